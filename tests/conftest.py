import json
import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure repo_root/src is available on sys.path before any tests import project modules
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from leak_trace.graph_snapshot import GraphSnapshot  # noqa: E402

LEAK_KEY = "0c2a6e6f-6c2b-4d5e-9a47-1f4b2c6d8e90"


def base_classes() -> list[dict[str, Any]]:
    return [
        {"id": 1, "name": "com.squareup.leakcanary.KeyedWeakReference",
         "superclass": "java.lang.ref.WeakReference"},
        {"id": 2, "name": "java.lang.ref.WeakReference", "superclass": "java.lang.ref.Reference"},
        {"id": 3, "name": "java.lang.String", "superclass": "java.lang.Object"},
        {"id": 4, "name": "com.example.MainActivity", "superclass": "android.app.Activity"},
        {"id": 5, "name": "com.example.Cache", "superclass": "java.lang.Object",
         "static_fields": {"activities": 31}},
        {"id": 6, "name": "java.lang.Object[]", "superclass": "java.lang.Object"},
        {"id": 7, "name": "java.lang.Thread", "superclass": "java.lang.Object"},
        {"id": 8, "name": "com.example.Registry", "superclass": "java.lang.Object",
         "static_fields": {"sInstance": 40}},
        {"id": 9, "name": "com.example.Holder", "superclass": "java.lang.Object"},
    ]


def make_leak_graph() -> dict[str, Any]:
    """MainActivity (30) kept alive by two equally long paths:

    Cache.activities -> Object[] [0] -> MainActivity
    Registry.sInstance -> Holder.activity -> MainActivity
    """
    return {
        "classes": base_classes(),
        "objects": [
            {"id": 10, "class": 1, "fields": {"key": 11, "referent": 30}},
            {"id": 11, "class": 3, "value": LEAK_KEY},
            {"id": 30, "class": 4},
            {"id": 31, "class": 6, "kind": "array", "elements": [30]},
            {"id": 40, "class": 9, "fields": {"activity": 30}},
        ],
        "roots": [5, 8],
    }


@pytest.fixture
def leak_graph() -> dict[str, Any]:
    return make_leak_graph()


@pytest.fixture
def snapshot(leak_graph: dict[str, Any]) -> GraphSnapshot:
    return GraphSnapshot.from_dict(leak_graph)


@pytest.fixture
def heap_dump(tmp_path: Path, leak_graph: dict[str, Any]) -> Path:
    path = tmp_path / "dump.hprof"
    path.write_text(json.dumps(leak_graph), encoding="utf-8")
    return path


@pytest.fixture
def leak_key() -> str:
    return LEAK_KEY
