from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from .errors import ShapeMismatchError


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_labels(path: PathLike) -> List[str]:
    """
    Load a plain labels file: one class name per line, index = line order.
    """

    labels: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if line:
                labels.append(line)
    return labels


def load_class_names(metadata_path: PathLike) -> Dict[int, str]:
    """
    Load class names from the lightweight `metadata.yaml` format exported next to models:

        names:
          0: person
          1: bicycle
          ...

    Only the `names:` mapping is read, so no YAML parser is needed.
    """

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
            if not in_names:
                continue

            # Parse "id: label"
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                # A new top-level key ends the names block.
                if not raw.startswith((" ", "\t")):
                    in_names = False
                continue
            names[int(left)] = right

    return names


def labels_from_mapping(mapping: Mapping[int, str]) -> List[str]:
    """
    Dense label table from an {id: name} mapping; missing ids become `class_<id>`.
    """

    if not mapping:
        return []
    size = max(mapping) + 1
    return [mapping.get(i, f"class_{i}") for i in range(size)]


def synthetic_labels(num_classes: int) -> List[str]:
    if num_classes <= 0:
        raise ValueError(f"num_classes must be > 0, got {num_classes}")
    return [f"class_{i}" for i in range(num_classes)]


def load_label_table(path: Optional[PathLike], num_classes: Optional[int] = None) -> List[str]:
    """
    Load a label table, falling back to `class_0 .. class_{C-1}` when it cannot be read.

    `.yaml`/`.yml` files are read with `load_class_names`, anything else with
    `load_labels`. Without `num_classes` there is nothing to fall back to and
    load errors propagate.
    """

    try:
        if path is None:
            raise FileNotFoundError("No labels path given.")
        p = Path(path)
        if p.suffix.lower() in {".yaml", ".yml"}:
            labels = labels_from_mapping(load_class_names(p))
        else:
            labels = load_labels(p)
        if not labels:
            raise ShapeMismatchError(f"Label file has no entries: {p}")
    except (OSError, UnicodeDecodeError, ShapeMismatchError) as exc:
        if num_classes is None:
            raise
        logger.warning("Could not load labels (%s); using %d synthetic class names.", exc, num_classes)
        return synthetic_labels(num_classes)

    return labels
