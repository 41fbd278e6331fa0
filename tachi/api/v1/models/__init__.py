# isort: dont-add-imports

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel as _pydantic_BaseModel
from pydantic import ConfigDict


class BaseModel(_pydantic_BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "BaseModel":
        return cls(**{k: mapping[k] for k in cls.model_fields if k in mapping})
