from dataclasses import dataclass, field
from decimal import Decimal

import pytest

from cyberkit.bandwidth.keeper import BandwidthMeter, export_genesis, init_genesis
from cyberkit.bandwidth.types import (
    GenesisState,
    NotEnoughBandwidthError,
    Params,
    default_params,
)
from cyberkit.chain import AccAddress, Context

ADDR_A = AccAddress(b"\x01" * 20, "bostrom")
ADDR_B = AccAddress(b"\x02" * 20, "bostrom")


class FakeStakes:
    def __init__(self, shares=None):
        self.shares = shares or {}

    def get_account_stake_percentage_volt(self, ctx, address):
        return self.shares.get(address.data, 0.0)


@dataclass
class Account:
    address: AccAddress
    account_number: int


class FakeAccounts:
    def __init__(self, accounts):
        self.accounts = accounts

    def get_all_accounts(self, ctx):
        return list(self.accounts)


@dataclass
class Link:
    source: str
    target: str


@dataclass
class LinkMsg:
    links: list


@dataclass
class Tx:
    msgs: list = field(default_factory=list)


@pytest.fixture
def ctx():
    return Context(block_height=1)


@pytest.fixture
def stakes():
    return FakeStakes({ADDR_A.data: 0.5})


@pytest.fixture
def meter(ctx, stakes):
    m = BandwidthMeter(stakes)
    m.set_params(ctx, default_params())
    return m


def test_params_round_trip(ctx, meter):
    params = Params(recovery_period=200, max_block_bandwidth=5000)
    meter.set_params(ctx, params)
    assert meter.get_params(ctx) == params


def test_get_params_unset_raises(ctx, stakes):
    with pytest.raises(LookupError):
        BandwidthMeter(stakes).get_params(ctx)


def test_set_invalid_params_raises(ctx, meter):
    with pytest.raises(ValueError):
        meter.set_params(ctx, Params(recovery_period=10))


def test_desirable_bandwidth_accumulates(ctx, meter):
    assert meter.get_desirable_bandwidth(ctx) == 0
    meter.add_to_desirable_bandwidth(ctx, 700)
    meter.add_to_desirable_bandwidth(ctx, 300)
    assert meter.get_desirable_bandwidth(ctx) == 700 + 300


def test_bandwidth_price_defaults_to_base(ctx, meter):
    base = default_params().base_price
    assert meter.get_bandwidth_price(ctx, base) == base
    meter.store_bandwidth_price(ctx, Decimal("0.75"))
    assert meter.get_bandwidth_price(ctx, base) == Decimal("0.75")


def test_block_bandwidth_accumulates_and_commit_resets(ctx, meter):
    meter.add_to_block_bandwidth(ctx, 40)
    meter.add_to_block_bandwidth(ctx, 60)
    assert meter.get_current_block_spent_bandwidth(ctx) == 100
    meter.commit_block_bandwidth(ctx)
    assert meter.get_current_block_spent_bandwidth(ctx) == 0
    assert meter.window_spent == 100
    assert meter.get_values_for_period(ctx, 1) == {1: 100}


def test_values_for_period_fill_missing_blocks_with_zero(ctx, meter):
    for height, spent in ((1, 5), (3, 7)):
        c = ctx.with_block_height(height)
        meter.add_to_block_bandwidth(c, spent)
        meter.commit_block_bandwidth(c)
    assert meter.get_values_for_period(ctx.with_block_height(3), 10) == {1: 5, 2: 0, 3: 7}


def test_window_drops_blocks_after_recovery_period(ctx, meter):
    meter.add_to_desirable_bandwidth(ctx, 1000)
    meter.add_to_block_bandwidth(ctx, 700)
    meter.commit_block_bandwidth(ctx)
    for height in range(2, 101):
        meter.commit_block_bandwidth(ctx.with_block_height(height))
    assert meter.window_spent == 700
    meter.commit_block_bandwidth(ctx.with_block_height(101))
    assert meter.window_spent == 0
    assert meter.get_current_network_load(ctx) == 0


def test_network_load_matches_window(ctx, meter):
    meter.add_to_desirable_bandwidth(ctx, 1000)
    meter.add_to_block_bandwidth(ctx, 500)
    meter.commit_block_bandwidth(ctx)
    load = meter.get_current_network_load(ctx)
    assert load * 1000 == 500


def test_network_load_without_desirable_bandwidth_raises(ctx, meter):
    with pytest.raises(ZeroDivisionError):
        meter.get_current_network_load(ctx)


def test_load_state_restores_window(ctx, meter, stakes):
    meter.add_to_desirable_bandwidth(ctx, 1000)
    for height, spent in ((1, 30), (2, 70)):
        c = ctx.with_block_height(height)
        meter.add_to_block_bandwidth(c, spent)
        meter.commit_block_bandwidth(c)
    restored = BandwidthMeter(stakes)
    restored.load_state(ctx.with_block_height(2))
    assert restored.window_spent == meter.window_spent
    assert restored.current_credit_price == default_params().base_price


def test_init_state_empties_window(ctx, meter):
    meter.add_to_block_bandwidth(ctx, 10)
    meter.commit_block_bandwidth(ctx)
    meter.init_state()
    assert meter.window_spent == 0


def _spend(ctx, meter, amount):
    meter.add_to_desirable_bandwidth(ctx, 1000)
    meter.add_to_block_bandwidth(ctx, amount)
    meter.commit_block_bandwidth(ctx)
    meter.adjust_price(ctx)


def test_adjust_price_clamps_to_base_price(ctx, meter):
    _spend(ctx, meter, 10)
    assert meter.current_credit_price == default_params().base_price


def test_adjust_price_clamps_to_one(ctx, meter):
    _spend(ctx, meter, 500)
    assert meter.current_credit_price == 1
    assert meter.get_bandwidth_price(ctx, Decimal(0)) == 1


def test_adjust_price_follows_load(ctx, meter):
    _spend(ctx, meter, 50)
    assert meter.current_credit_price == Decimal("0.5")


def test_adjust_price_without_desirable_bandwidth_keeps_price(ctx, meter):
    meter.adjust_price(ctx)
    assert meter.current_credit_price == 0
    assert meter.get_bandwidth_price(ctx, Decimal("0.3")) == Decimal("0.3")


def test_max_block_bandwidth_comes_from_params(ctx, meter):
    assert meter.get_max_block_bandwidth(ctx) == default_params().max_block_bandwidth


def test_missing_account_bandwidth_is_empty(ctx, meter):
    bw = meter.get_account_bandwidth(ctx.with_block_height(7), ADDR_B)
    assert bw.neuron == str(ADDR_B)
    assert (bw.remained_value, bw.max_value, bw.last_updated_block) == (0, 0, 7)


def test_current_account_bandwidth_recovers_fully(ctx, meter):
    meter.add_to_desirable_bandwidth(ctx, 1000)
    meter.update_account_max_bandwidth(ctx, ADDR_A)
    later = ctx.with_block_height(1 + default_params().recovery_period)
    bw = meter.get_current_account_bandwidth(later, ADDR_A)
    assert bw.max_value == meter.get_account_max_bandwidth(ctx, ADDR_A)
    assert bw.remained_value == bw.max_value
    assert bw.last_updated_block == later.block_height


def test_consume_and_charge_store_result(ctx, meter):
    bw = meter.get_account_bandwidth(ctx, ADDR_A)
    charged = meter.charge_account_bandwidth(ctx, bw, 300)
    assert meter.get_account_bandwidth(ctx, ADDR_A).remained_value == 300
    consumed = meter.consume_account_bandwidth(ctx, charged, 120)
    assert consumed.remained_value == 300 - 120
    assert meter.get_account_bandwidth(ctx, ADDR_A) == consumed


def test_consume_too_much_raises_and_keeps_store(ctx, meter):
    bw = meter.charge_account_bandwidth(ctx, meter.get_account_bandwidth(ctx, ADDR_A), 10)
    with pytest.raises(NotEnoughBandwidthError):
        meter.consume_account_bandwidth(ctx, bw, 11)
    assert meter.get_account_bandwidth(ctx, ADDR_A).remained_value == 10


def test_cyberlinks_cost(ctx, meter):
    tx = Tx([LinkMsg([Link("a", "b"), Link("b", "c")]), LinkMsg([Link("c", "d")])])
    assert meter.get_total_cyberlinks_cost(ctx, tx) == 3000
    meter.store_bandwidth_price(ctx, Decimal(1))
    meter.load_state(ctx)
    assert meter.get_priced_total_cyberlinks_cost(ctx, tx) == 3000


def test_cyberlinks_cost_rejects_other_messages(ctx, meter):
    with pytest.raises(TypeError):
        meter.get_total_cyberlinks_cost(ctx, Tx([object()]))


def test_init_and_export_genesis(ctx, stakes):
    meter = BandwidthMeter(stakes)
    meter.add_to_desirable_bandwidth(ctx, 1000)
    params = Params(recovery_period=300)
    init_genesis(ctx, meter, FakeAccounts([Account(ADDR_A, 0), Account(ADDR_B, 1)]), GenesisState(params))
    bw = meter.get_account_bandwidth(ctx, ADDR_A)
    assert bw.max_value == meter.get_account_max_bandwidth(ctx, ADDR_A)
    assert bw.remained_value == bw.max_value
    assert bw.last_updated_block == 0
    assert meter.current_credit_price == params.base_price
    assert export_genesis(ctx, meter) == GenesisState(params)