import apsw
import pytest

from fanout_bench import engine
from fanout_bench.errors import EngineConfigError, OpenError, SchemaError, StatusError


def test_open_in_missing_directory_is_open_error(tmp_path):
    with pytest.raises(OpenError, match="read-write"):
        engine.open_handle(str(tmp_path / "missing" / "db"))


def test_read_only_handle_refuses_writes(writer, db_path):
    reader = engine.open_handle(db_path, read_only=True)
    try:
        with pytest.raises(apsw.ReadOnlyError):
            reader.execute("insert into t values(1, 'x')")
    finally:
        reader.close()


def test_bad_ddl_is_schema_error(db_path):
    handle = engine.open_handle(db_path)
    try:
        with pytest.raises(SchemaError):
            engine.execute_schema(handle, "create tabel nope(x)")
    finally:
        handle.close()


def test_db_status_on_closed_handle_is_status_error(db_path):
    handle = engine.open_handle(db_path)
    handle.close()
    with pytest.raises(StatusError):
        engine.db_status(handle, apsw.SQLITE_DBSTATUS_CACHE_USED)


def test_db_status_returns_current_and_high_water(writer):
    current, high_water = engine.db_status(writer, apsw.SQLITE_DBSTATUS_SCHEMA_USED)
    assert current >= 0 and high_water >= 0


def test_connection_hook_removed_even_on_error(db_path):
    seen = []
    with pytest.raises(RuntimeError):
        with engine.connection_hook(seen.append):
            engine.open_handle(db_path).close()
            raise RuntimeError("boom")
    engine.open_handle(db_path).close()
    assert len(seen) == 1
    assert seen.append not in apsw.connection_hooks


def test_memory_stats_are_non_negative():
    stats = engine.memory_stats()
    assert stats["memory_used"] >= 0
    assert stats["memory_high_water"] >= 0


def test_configure_engine_computes_layout(monkeypatch):
    monkeypatch.setattr(apsw, "config", lambda op, *args: 136)
    layout = engine.configure_engine(4232 * 100)
    assert layout.header_size == 136
    assert layout.slot_size == 4096 + 136
    assert layout.slots == 100
    assert layout.cache_size_kib == 400


def test_configure_engine_after_initialize_is_engine_config_error(monkeypatch):
    def refuse(op, *args):
        raise apsw.MisuseError("sqlite already initialized")

    monkeypatch.setattr(apsw, "config", refuse)
    with pytest.raises(EngineConfigError, match="header size"):
        engine.configure_engine(1 << 20)


@pytest.mark.parametrize("budget", [0, -5, 100])
def test_configure_engine_rejects_tiny_budgets(monkeypatch, budget):
    monkeypatch.setattr(apsw, "config", lambda op, *args: 136)
    with pytest.raises(EngineConfigError):
        engine.configure_engine(budget)


def test_page_cache_hook_sets_cache_size(db_path):
    layout = engine.PageCacheLayout(budget_bytes=1 << 20, page_size=4096, header_size=0)
    with engine.connection_hook(engine.page_cache_hook(layout)):
        handle = engine.open_handle(db_path)
    try:
        assert list(handle.execute("pragma cache_size"))[0][0] == -1024
    finally:
        handle.close()
