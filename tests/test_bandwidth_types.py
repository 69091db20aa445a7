from dataclasses import replace
from decimal import Decimal

import pytest

from cyberkit.bandwidth.types import (
    GenesisState,
    NeuronBandwidth,
    NotEnoughBandwidthError,
    account_store_key,
    block_store_key,
    default_genesis_state,
    default_params,
    new_genesis_neuron_bandwidth,
    validate_genesis,
)
from cyberkit.chain import AccAddress, dec_with_prec, format_dec, uint64_to_big_endian


def test_new_genesis_neuron_bandwidth():
    addr = AccAddress(bytes(range(20)), "cyber")
    bw = new_genesis_neuron_bandwidth(addr, 500)
    assert bw.neuron == str(addr)
    assert bw.remained_value == 500
    assert bw.max_value == 500
    assert bw.last_updated_block == 0


def test_recover_full_after_period():
    bw = NeuronBandwidth("n", remained_value=0, last_updated_block=0, max_value=1000)
    bw.recover(100, 100)
    assert bw.remained_value == bw.max_value
    assert bw.last_updated_block == 100


def test_recover_partial_and_capped():
    bw = NeuronBandwidth("n", remained_value=0, last_updated_block=0, max_value=1000)
    bw.recover(50, 100)
    assert 0 < bw.remained_value < bw.max_value
    bw.recover(10_000, 100)
    assert bw.remained_value == bw.max_value


def test_recover_rejects_zero_period():
    bw = NeuronBandwidth("n", max_value=10)
    with pytest.raises(ValueError):
        bw.recover(1, 0)


def test_update_max_clamps_remained():
    bw = NeuronBandwidth("n", remained_value=800, last_updated_block=0, max_value=1000)
    bw.update_max(300, 5, 100)
    assert bw.max_value == 300
    assert bw.remained_value == 300
    assert bw.last_updated_block == 5


def test_consume_and_charge():
    initial, spent = 500, 200
    bw = NeuronBandwidth("n", remained_value=initial, max_value=1000)
    bw.consume(spent)
    assert bw.remained_value == initial - spent
    bw.apply_charge(spent)
    assert bw.remained_value == initial


def test_consume_too_much_raises_and_keeps_value():
    bw = NeuronBandwidth("n", remained_value=10, max_value=10)
    with pytest.raises(NotEnoughBandwidthError) as info:
        bw.consume(11)
    assert info.value.code == 2
    assert bw.remained_value == 10


def test_has_enough_remained():
    bw = NeuronBandwidth("n", remained_value=10)
    assert bw.has_enough_remained(10)
    assert not bw.has_enough_remained(11)


def test_default_params_values():
    params = default_params()
    assert params.recovery_period == 100
    assert params.adjust_price_period == 5
    assert params.base_price == dec_with_prec(25, 2)
    assert params.base_load == dec_with_prec(10, 2)
    assert params.max_block_bandwidth == 10000
    assert format_dec(params.base_price) == "0.250000000000000000"


@pytest.mark.parametrize(
    "changes, message",
    [
        ({"recovery_period": 50}, "recovery period is too low"),
        ({"adjust_price_period": 4}, "adjust price period is too low"),
        ({"base_price": Decimal(0)}, "base price is not positive"),
        ({"base_price": Decimal(2)}, "base price is more than one"),
        ({"base_load": Decimal(0)}, "base load is not positive"),
        ({"base_load": Decimal(2)}, "base load is more than one"),
        ({"base_load": Decimal("0.05")}, "less than one tenth"),
        ({"max_block_bandwidth": 1000}, "max block bandwidth is too low"),
    ],
)
def test_params_validation_errors(changes, message):
    with pytest.raises(ValueError, match=message):
        replace(default_params(), **changes).validate()


def test_params_type_error():
    with pytest.raises(TypeError, match="invalid parameter type"):
        replace(default_params(), recovery_period="100").validate()


def test_genesis():
    assert default_genesis_state().params == default_params()
    bad = GenesisState(replace(default_params(), recovery_period=1))
    with pytest.raises(ValueError):
        validate_genesis(bad)


def test_store_keys():
    assert account_store_key("abc") == b"\x01abc"
    assert block_store_key(1) == b"\x02" + uint64_to_big_endian(1)