# catalog.py
import json
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from pydantic import TypeAdapter

from errors import InvalidModelError
from models import ModelInfo
from settings import Settings

DEFAULT_MODELS: Dict[str, ModelInfo] = {
    "1": ModelInfo(id="gemini-3-pro-preview", name="Gemini 3 Pro (Preview)"),
    "2": ModelInfo(id="gemini-2.5-pro-preview-05-06", name="Gemini 2.5 Pro (Preview)"),
    "3": ModelInfo(id="gemini-2.5-flash-preview-05-20", name="Gemini 2.5 Flash (Preview)"),
    "4": ModelInfo(id="gemini-2.0-flash", name="Gemini 2.0 Flash"),
    "5": ModelInfo(id="gemini-2.0-flash-lite", name="Gemini 2.0 Flash Lite"),
    "6": ModelInfo(id="gemini-1.5-pro", name="Gemini 1.5 Pro"),
    "7": ModelInfo(id="gemini-1.5-flash", name="Gemini 1.5 Flash"),
}

_catalog_adapter = TypeAdapter(Dict[str, ModelInfo])


class ModelCatalog:
    """Read-only mapping of short key -> ModelInfo."""

    def __init__(self, models: Mapping[str, ModelInfo]):
        if not models:
            raise ValueError("Model catalog must not be empty")
        self._models = dict(models)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ModelCatalog":
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ValueError(f"Cannot read model catalog {path}: {e}") from e
        raw = json.loads(text)
        return cls(_catalog_adapter.validate_python(raw))

    def resolve(self, key_or_id: str) -> ModelInfo:
        """Look up by key first, then by model id."""
        if key_or_id in self._models:
            return self._models[key_or_id]
        for info in self._models.values():
            if info.id == key_or_id:
                return info
        raise InvalidModelError(key_or_id)

    def key_of(self, model_id: str) -> Optional[str]:
        for key, info in self._models.items():
            if info.id == model_id:
                return key
        return None

    def __contains__(self, key_or_id: object) -> bool:
        if not isinstance(key_or_id, str):
            return False
        try:
            self.resolve(key_or_id)
        except InvalidModelError:
            return False
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def items(self) -> Iterator[Tuple[str, ModelInfo]]:
        return iter(self._models.items())

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {key: info.model_dump() for key, info in self._models.items()}


def load_catalog(settings: Settings) -> ModelCatalog:
    if settings.MODEL_CATALOG_PATH:
        return ModelCatalog.from_file(settings.MODEL_CATALOG_PATH)
    return ModelCatalog(DEFAULT_MODELS)
