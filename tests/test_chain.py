from decimal import Decimal

import pytest

from cyberkit.chain import (
    AccAddress,
    Coin,
    Context,
    Event,
    GasMeter,
    KVStore,
    OutOfGasError,
    bech32_decode,
    bech32_encode,
    big_endian_to_uint64,
    dec_with_prec,
    format_dec,
    round_dec,
    uint64_to_big_endian,
)


def test_kvstore_set_get_has_delete():
    store = KVStore()
    store.set(b"a", b"1")
    assert store.get(b"a") == b"1"
    assert store.has(b"a")
    store.delete(b"a")
    assert store.get(b"a") is None
    assert not store.has(b"a")


def test_kvstore_rejects_none_value():
    with pytest.raises(ValueError):
        KVStore().set(b"a", None)


def test_kvstore_iterate_prefix_sorted_and_filtered():
    store = KVStore()
    store.set(b"\x01b", 2)
    store.set(b"\x01a", 1)
    store.set(b"\x02c", 3)
    assert list(store.iterate_prefix(b"\x01")) == [(b"\x01a", 1), (b"\x01b", 2)]


def test_gas_meter_raises_past_limit():
    meter = GasMeter(limit=100)
    meter.consume_gas(60, "first")
    with pytest.raises(OutOfGasError) as info:
        meter.consume_gas(50, "second")
    assert info.value.descriptor == "second"
    assert meter.gas_consumed_to_limit() == meter.limit


def test_cache_context_writes_only_on_commit():
    ctx = Context(block_height=5)
    ctx.kv_store("main").set(b"k", b"old")
    cached, write = ctx.cache_context()
    assert cached.kv_store("main").get(b"k") == b"old"
    cached.kv_store("main").set(b"k", b"new")
    cached.kv_store("main").set(b"x", b"added")
    cached.kv_store("main").delete(b"k")
    assert ctx.kv_store("main").get(b"k") == b"old"
    assert ctx.kv_store("main").get(b"x") is None
    write()
    assert ctx.kv_store("main").get(b"k") is None
    assert ctx.kv_store("main").get(b"x") == b"added"


def test_cache_context_iteration_merges_changes():
    ctx = Context()
    ctx.kv_store("s").set(b"p1", 1)
    ctx.kv_store("s").set(b"p2", 2)
    cached, _ = ctx.cache_context()
    cached.kv_store("s").delete(b"p1")
    cached.kv_store("s").set(b"p3", 3)
    assert list(cached.kv_store("s").iterate_prefix(b"p")) == [(b"p2", 2), (b"p3", 3)]


def test_transient_store_in_cache_context():
    ctx = Context()
    cached, write = ctx.cache_context()
    cached.transient_store("t").set(b"k", 7)
    assert ctx.transient_store("t").get(b"k") is None
    write()
    assert ctx.transient_store("t").get(b"k") == 7


def test_with_gas_meter_shares_stores():
    ctx = Context()
    meter = GasMeter(limit=10)
    derived = ctx.with_gas_meter(meter)
    derived.kv_store("s").set(b"k", b"v")
    assert derived.gas_meter is meter
    assert ctx.kv_store("s").get(b"k") == b"v"


def test_with_block_height_leaves_original():
    ctx = Context(block_height=1)
    other = ctx.with_block_height(9)
    assert other.block_height == 9
    assert ctx.block_height == 1


def test_emit_events():
    ctx = Context()
    event = Event("message", (("module", "x"),))
    ctx.emit_events([event])
    assert ctx.events == [event]


def test_coin_is_lt_and_denom_mismatch():
    assert Coin("boot", 1).is_lt(Coin("boot", 2))
    assert not Coin("boot", 2).is_lt(Coin("boot", 2))
    with pytest.raises(ValueError):
        Coin("boot", 1).is_lt(Coin("other", 2))


def test_coin_rejects_negative():
    with pytest.raises(ValueError):
        Coin("boot", -1)


def test_bech32_reference_vectors():
    assert bech32_decode("A12UEL5L") == ("a", b"")
    hrp, data = bech32_decode("abcdef1qpzry9x8gf2tvdw0s3jn54khce6mua7lmqqqxw")
    assert hrp == "abcdef"
    assert data.hex() == "00443214c74254b635cf84653a56d7c675be77df"


def test_bech32_round_trip():
    payload = bytes(range(20))
    assert bech32_decode(bech32_encode("cyber", payload)) == ("cyber", payload)


def test_bech32_bad_checksum():
    with pytest.raises(ValueError):
        bech32_decode("a12uel5m")


def test_acc_address_round_trip_and_prefix_check():
    addr = AccAddress(bytes(range(20)), "cyber")
    parsed = AccAddress.from_bech32(str(addr), "cyber")
    assert parsed == addr
    assert bytes(parsed) == addr.data
    with pytest.raises(ValueError):
        AccAddress.from_bech32(str(addr), "other")
    with pytest.raises(ValueError):
        AccAddress.from_bech32("")


def test_uint64_round_trip():
    assert uint64_to_big_endian(1) == b"\x00\x00\x00\x00\x00\x00\x00\x01"
    for value in (0, 12345, 2**64 - 1):
        assert big_endian_to_uint64(uint64_to_big_endian(value)) == value
    assert big_endian_to_uint64(b"") == 0
    assert big_endian_to_uint64(None) == 0
    with pytest.raises(ValueError):
        uint64_to_big_endian(-1)


def test_dec_helpers():
    assert format_dec(dec_with_prec(25, 2)) == "0.250000000000000000"
    assert dec_with_prec(25, 2) == Decimal("0.25")
    assert round_dec(Decimal("2.5")) % 2 == 0
    assert round_dec(Decimal("3.5")) % 2 == 0
    assert round_dec(Decimal(7)) == 7
    with pytest.raises(ValueError):
        dec_with_prec(1, 19)