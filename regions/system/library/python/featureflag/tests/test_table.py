"""ActiveModificationTable のユニットテスト"""

import threading
from unittest.mock import MagicMock

from k1s0_featureflag.models import Modification
from k1s0_featureflag.table import ActiveModificationTable, PanicSwitch
from k1s0_featureflag.values import FlagValue


def mod(key: str, value: object, group: str = "g1", variation: str = "v1") -> Modification:
    return Modification(key, group, variation, FlagValue.of(value))


def make_table(hook: MagicMock | None = None) -> ActiveModificationTable:
    table = ActiveModificationTable(on_activate=hook)
    table.replace(
        {"price": mod("price", 9.5), "title": mod("title", "hello"), "on": mod("on", True)}
    )
    return table


def test_typed_read_round_trip() -> None:
    """数値は数値として読め、文字列として読むと既定値になる。"""
    table = make_table()
    assert table.get("price", 0.0) == 9.5
    assert table.get_number("price", 0) == 9.5
    assert table.get("price", "default") == "default"
    assert table.get_string("price", "default") == "default"


def test_bool_and_number_are_distinct() -> None:
    """boolean を数値として読まない。"""
    table = make_table()
    assert table.get("on", False) is True
    assert table.get("on", 0) == 0
    assert table.get_bool("on", False) is True


def test_missing_key_returns_default() -> None:
    """存在しないキーは既定値。"""
    table = make_table()
    assert table.get("missing", "x") == "x"
    assert table.get_modification_info("missing") is None


def test_activation_reported_once_per_call() -> None:
    """activate=True で値が見つかれば呼び出しごとに 1 回報告する。"""
    hook = MagicMock()
    table = make_table(hook)
    table.get("title", "", activate=True)
    table.get("title", "", activate=True)
    assert hook.call_count == 2
    reported = hook.call_args.args[0]
    assert (reported.variation_group_id, reported.variation_id) == ("g1", "v1")


def test_activation_not_reported_on_miss_or_mismatch() -> None:
    """見つからない・型不一致の場合は報告しない。"""
    hook = MagicMock()
    table = make_table(hook)
    table.get("missing", "", activate=True)
    table.get("title", 0, activate=True)
    table.get("title", "")
    hook.assert_not_called()


def test_activate_key() -> None:
    """activate はキーが存在すれば報告する。"""
    hook = MagicMock()
    table = make_table(hook)
    assert table.activate("price") is True
    assert table.activate("missing") is False
    hook.assert_called_once()


def test_activation_hook_failure_does_not_raise() -> None:
    """報告処理の失敗は呼び出し元に伝播しない。"""
    table = make_table(MagicMock(side_effect=RuntimeError("queue closed")))
    assert table.get("title", "", activate=True) == "hello"


def test_replace_swaps_whole_table() -> None:
    """replace は差分ではなく全体を差し替える。"""
    table = make_table()
    before = table.snapshot()
    table.replace({"other": mod("other", 1)})
    assert set(table.snapshot()) == {"other"}
    # 取得済みのスナップショットは変化しない
    assert set(before) == {"price", "title", "on"}


def test_panic_short_circuits_reads_and_writes() -> None:
    """パニック中は読み込みが既定値、書き込みが no-op になる。"""
    panic = PanicSwitch()
    hook = MagicMock()
    table = ActiveModificationTable(panic, on_activate=hook)
    table.replace({"title": mod("title", "hello")})

    panic.set(True)
    assert table.get("title", "default", activate=True) == "default"
    assert table.activate("title") is False
    assert table.replace({"title": mod("title", "new")}) is False
    hook.assert_not_called()

    panic.set(False)
    assert table.get("title", "default") == "hello"


def test_concurrent_readers_never_see_partial_table() -> None:
    """読み込み側は差し替え前後どちらかの完全なスナップショットだけを観測する。"""
    table = ActiveModificationTable()
    old = {f"k{i}": mod(f"k{i}", "old") for i in range(50)}
    new = {f"k{i}": mod(f"k{i}", "new") for i in range(50)}
    table.replace(old)
    mixed: list[set[str]] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            values = {m.raw for m in table.snapshot().values()}
            if len(values) != 1:
                mixed.append(values)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for i in range(200):
        table.replace(new if i % 2 == 0 else old)
    stop.set()
    for t in threads:
        t.join()
    assert mixed == []
