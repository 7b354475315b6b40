from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# `{0: 'person', 1: 'bicycle', ..., 27: "yellow_lady's_slipper"}`
_NAME_TOKEN = re.compile(r"""(['"])([-()\w '"]+)(['"])""")
# `[17, 3]`
_KPT_SHAPE = re.compile(r"([0-9]+), ([0-9]+)")


def parse_names(text: str) -> List[str]:
    """
    Extract quoted class names, in order, from an exported `names` string.
    """

    return [m.group(2) for m in _NAME_TOKEN.finditer(text)]


def parse_kpt_shape(text: str) -> Tuple[int, int]:
    """
    Parse `kpt_shape` (e.g. "[17, 3]") into (num_keypoints, dims).
    """

    m = _KPT_SHAPE.search(text)
    if m is None:
        raise ConfigurationError(f"Cannot parse kpt_shape from {text!r}")
    return int(m.group(1)), int(m.group(2))


class ModelMetadata:
    """
    Structured view over the string key/value metadata embedded in exported
    models. Only the keys the post-processor needs are interpreted.
    """

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._entries: Dict[str, str] = dict(entries or {})

    def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def task(self) -> Optional[str]:
        value = self.get("task")
        return value.strip() if value else None

    @property
    def names(self) -> Optional[List[str]]:
        raw = self.get("names")
        if raw is None:
            return None
        names = parse_names(raw)
        if not names:
            logger.warning("Model metadata has a `names` entry but no class names could be parsed: %r", raw)
            return None
        return names

    @property
    def nk(self) -> int:
        raw = self.get("kpt_shape")
        if raw is None:
            return 0
        return parse_kpt_shape(raw)[0]

    def __repr__(self) -> str:
        return f"ModelMetadata({sorted(self._entries)})"


def load_metadata_file(metadata_path: Union[str, Path]) -> ModelMetadata:
    """
    Load metadata from the lightweight `metadata.yaml` format exported next to
    models:

        task: detect
        kpt_shape: [17, 3]
        names:
          0: person
          1: bicycle
          ...

    Top-level `key: value` pairs are kept verbatim. The `names` block is
    re-serialised as `{0: 'person', ...}` so it parses like embedded metadata.
    This function intentionally avoids adding a PyYAML dependency.
    """

    entries: Dict[str, str] = {}
    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if ":" not in line:
                continue

            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip()

            if in_names and raw[:1].isspace():
                # Parse "id: label"
                if left.isdigit():
                    names[int(left)] = right.strip("'").strip('"')
                continue

            in_names = False
            entries[left] = right.strip("'").strip('"')

    if names:
        entries["names"] = "{" + ", ".join(f"{i}: {names[i]!r}" for i in sorted(names)) + "}"

    return ModelMetadata(entries)
