# cyberkit

`cyberkit` models three chain modules as plain Python objects working
over in-memory key-value stores:

- **bandwidth**: personal bandwidth that recovers linearly over a block
  window, a sliding window of bandwidth spent per block, and a credit
  price that follows the network load.
- **cyberbank**: a bank proxy that calls hooks after every coin transfer
  and computes stake shares, plus an index of every account's ampere
  stake.
- **dmn**: "thoughts", scheduled contract calls triggered by a block
  period or a single block height. Each one is paid for by its program
  in gas and TTL fees.

The package has no third-party dependencies.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## The execution environment: `cyberkit.chain`

- `Context` carries the block height, the `check_tx` flag, named
  key-value stores (`kv_store(name)`, `transient_store(name)`), a
  `GasMeter`, the emitted `Event`s and a logger.
  `Context.cache_context()` returns a branched context and a function
  that writes the branch back into the parent. `with_gas_meter` and
  `with_block_height` return modified copies.
- `KVStore` holds byte keys and any values. `iterate_prefix` yields
  entries in key order.
- `GasMeter.consume_gas` raises `OutOfGasError` once the limit is
  passed.
- `Coin(denom, amount)` rejects negative amounts. `is_lt` requires the
  same denomination.
- `AccAddress(data, hrp)` renders as bech32.
  `AccAddress.from_bech32(text, hrp=None)` parses one and, if `hrp` is
  given, checks the prefix.
- The helpers are `bech32_encode`, `bech32_decode`,
  `uint64_to_big_endian`, `big_endian_to_uint64`, `dec_with_prec`,
  `format_dec` (18 fractional digits) and `round_dec` (half to even).
- The protocols that collaborators must satisfy are
  `AccountStakeProvider`, `EnergyKeeper`, `AccountKeeper` and
  `BankKeeper`. Accounts returned by an account keeper expose `address`
  and `account_number`.

Errors are exceptions derived from `ChainError`, which carries a
`codespace` and a `code`.

## Bandwidth

```python
from cyberkit.bandwidth.types import NeuronBandwidth

bw = NeuronBandwidth(neuron="bostrom1...", remained_value=0,
                     last_updated_block=0, max_value=1000)
bw.recover(current_block=50, recovery_period=100)   # remained_value is now 500
bw.has_enough_remained(400)                          # True
bw.consume(600)                                      # raises NotEnoughBandwidthError
```

`cyberkit.bandwidth.types` also defines the following:

- `Params`, whose `validate()` raises `ValueError` or `TypeError`.
- `default_params`, `GenesisState`, `default_genesis_state` and
  `validate_genesis`.
- The store keys `account_store_key` and `block_store_key`.
- The errors `BandwidthError`, `NotEnoughBandwidthError` and
  `ExceededMaxBlockBandwidthError`.

`cyberkit.bandwidth.keeper.BandwidthMeter` is built from an
`AccountStakeProvider`:

```python
from cyberkit.chain import Context, format_dec
from cyberkit.bandwidth.keeper import BandwidthMeter
from cyberkit.bandwidth.types import default_params

class Stakes:
    def get_account_stake_percentage_volt(self, ctx, address):
        return 0.5

ctx = Context(block_height=1)
meter = BandwidthMeter(Stakes())
meter.set_params(ctx, default_params())
meter.init_state()
meter.add_to_desirable_bandwidth(ctx, 10_000)
meter.add_to_block_bandwidth(ctx, 2_000)
meter.commit_block_bandwidth(ctx)
meter.window_spent                                # 2000
format_dec(meter.get_current_network_load(ctx))   # '0.200000000000000000'
```

The meter also handles the following:

- It adjusts the price with `adjust_price`, clamped between the base
  price and one.
- It prices cyberlink transactions. Each link in a message's `links`
  costs 1000.
- It tracks each account's current bandwidth. The maximum is the
  account's stake share of the desirable bandwidth.

`init_genesis` and `export_genesis` load and return the module's
genesis state.

`cyberkit.bandwidth.abci.end_blocker(ctx, meter, tracker)` does the
per-block work:

- It adjusts the price every `adjust_price_period` blocks.
- It commits the block's bandwidth.
- It refreshes the accounts that a `StakeChangeTracker` collected.
  Register `tracker.hook` as a transfer hook on the bank proxy.

`cyberkit.bandwidth.queries` provides read-only access:

- `make_querier(meter)` answers legacy path queries (`params`, `load`,
  `price`, `desirable_bandwidth`, `account`) with indented JSON.
- `QueryServer` returns typed values.
- `WasmQuerier.query_custom` answers contract JSON queries
  (`bandwidth_price`, `bandwidth_load`, `bandwidth_total`,
  `neuron_bandwidth`).

## Cyberbank

`cyberkit.cyberbank.proxy.Proxy(bank, volt_denom=..., ampere_denom=...)`
wraps a bank object:

- Its transfer methods call the registered hooks after a successful
  transfer. Transfers between two modules run no hooks.
- It computes volt and ampere stakes, including coins routed through
  the energy keeper set with `set_grid_keeper`.
- Any other attribute is delegated to the wrapped bank.

`cyberkit.cyberbank.index.IndexedKeeper(proxy, account_keeper)` keeps
each account number's ampere stake:

- It registers its own transfer hook.
- `update_accounts_stake_ampere` (run by `end_blocker`) refreshes the
  pending stakes of the accounts touched during the block. It fills
  missing account numbers with zero.
- `detect_users_stake_ampere_change` applies the pending stakes and
  reports whether any known stake changed.

## DMN (thoughts)

- `cyberkit.dmn.types` defines the following:
  - `Trigger`, `Load`, `Thought` and `ThoughtStats`.
  - `sort_thoughts`, which orders thoughts by descending gas price.
  - `Params` and the genesis helpers.
  - The key functions `thought_key` and `thought_stats_key`.
  - The errors derived from `DmnError`.
- `cyberkit.dmn.keeper.Keeper(bank_keeper, account_keeper, fee_denom=...)`
  stores thoughts and enforces the slot limit: a higher gas price
  evicts the cheapest thought. `begin_block` runs
  `execute_thoughts_queue`, which works as follows:
  - Each due thought runs in a branched context through the wasm keeper
    given to `set_wasm_keeper`. That object needs a
    `sudo(ctx, contract, msg)` method.
  - The thought's program is charged gas and TTL fees to the fee
    collector.
  - If the fee cannot be paid, the thought is dropped.
- `cyberkit.dmn.msgs` defines the eight message types, their
  `validate_basic` checks and their sign bytes. It also provides
  `decode_cid`. Particles must be version 0 content identifiers;
  otherwise the checks raise `InvalidParticleError` or
  `CidVersionError`.
- `cyberkit.dmn.server.MsgServer` applies messages through the keeper
  and emits events on the context.
- `cyberkit.dmn.queries` provides the following:
  - `make_querier` and `QueryServer`.
  - `WasmMsgParser`, which turns contract JSON into validated messages.
  - `WasmQuerier`, which answers `thought`, `thought_stats` and
    `lowest_fee` queries.

## What the package does not do

- **No persistent storage.** State lives in in-memory `KVStore`s inside
  a `Context`. Module parameters are kept in the store named
  `params/<space>`.
- **No command line, REST routes or gRPC service.** The queriers and
  query servers are plain Python callables.
- **No contract runtime.** Execution is delegated to the wasm keeper
  you supply.
- **No bank or account implementation.** These come from the objects
  you pass in.
- **No binary message encoding.** Stored values are Python objects.