from __future__ import annotations

from pathlib import Path

import pytest

CHILD_SCRIPT = Path(__file__).parent / "fixtures" / "child.py"


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)


@pytest.fixture
def child_script() -> Path:
    return CHILD_SCRIPT
