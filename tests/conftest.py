
import pytest

from fanout_bench import engine, workload
from fanout_bench.registry import ConnectionRegistry


@pytest.fixture()
def registry():
    reg = ConnectionRegistry()
    with reg.installed():
        yield reg


@pytest.fixture()
def storage_root(tmp_path):
    root = tmp_path / "storage"
    root.mkdir()
    return str(root)


@pytest.fixture()
def db_path(tmp_path):
    return str(tmp_path / engine.DB_FILENAME)


@pytest.fixture()
def writer(db_path):
    handle = engine.open_handle(db_path)
    engine.execute_schema(handle, workload.SCHEMA_SQL)
    yield handle
    handle.close()


