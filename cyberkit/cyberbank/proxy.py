"""Bank wrapper that notifies hooks on coin transfers and reports stakes."""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any

from ..chain import AccAddress, AccountKeeper, Coin, CoinsTransferHook, Context, EnergyKeeper


def _amount_of(coins: Iterable[Coin], denom: str) -> int:
    return sum(coin.amount for coin in coins if coin.denom == denom)


def _parse_address(text: str) -> AccAddress | None:
    try:
        return AccAddress.from_bech32(text)
    except ValueError:
        return None


class Proxy:
    """Wraps a bank keeper; other bank methods are delegated unchanged."""

    def __init__(self, bank: Any, *, volt_denom: str, ampere_denom: str) -> None:
        self._bank = bank
        self._volt_denom = volt_denom
        self._ampere_denom = ampere_denom
        self._account_keeper: AccountKeeper | None = None
        self._energy_keeper: EnergyKeeper | None = None
        self._hooks: list[CoinsTransferHook] = []

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._bank, name)

    def add_hook(self, hook: CoinsTransferHook) -> None:
        self._hooks.append(hook)

    def set_grid_keeper(self, keeper: EnergyKeeper) -> None:
        self._energy_keeper = keeper

    def set_account_keeper(self, keeper: AccountKeeper) -> None:
        self._account_keeper = keeper

    def on_coins_transfer(
        self, ctx: Context, from_addr: AccAddress | None, to_addr: AccAddress | None
    ) -> None:
        for hook in self._hooks:
            hook(ctx, from_addr, to_addr)

    def get_total_supply_volt(self, ctx: Context) -> int:
        return self._bank.get_supply(ctx, self._volt_denom).amount

    def get_total_supply_ampere(self, ctx: Context) -> int:
        return self._bank.get_supply(ctx, self._ampere_denom).amount

    def get_account_stake_percentage_volt(self, ctx: Context, addr: AccAddress) -> float:
        stake = float(self.get_account_total_stake_volt(ctx, addr))
        supply = float(self.get_total_supply_volt(ctx))
        if supply == 0:
            return 0.0 if stake == 0 else math.copysign(math.inf, stake)
        return stake / supply

    def get_account_total_stake_volt(self, ctx: Context, addr: AccAddress) -> int:
        balance = self._bank.get_balance(ctx, addr, self._volt_denom).amount
        return balance + _amount_of(self.get_routed_to(ctx, addr), self._volt_denom)

    def get_account_total_stake_ampere(self, ctx: Context, addr: AccAddress) -> int:
        balance = self._bank.get_balance(ctx, addr, self._ampere_denom).amount
        return balance + _amount_of(self.get_routed_to(ctx, addr), self._ampere_denom)

    def get_routed_to(self, ctx: Context, addr: AccAddress) -> list[Coin]:
        if self._energy_keeper is None:
            raise RuntimeError("energy keeper is not set")
        return list(self._energy_keeper.get_routed_to_energy(ctx, addr))

    def _module_address(self, name: str) -> AccAddress:
        if self._account_keeper is None:
            raise RuntimeError("account keeper is not set")
        return self._account_keeper.get_module_address(name)

    def input_output_coins(self, ctx: Context, inputs: Iterable[Any], outputs: Iterable[Any]) -> None:
        inputs, outputs = list(inputs), list(outputs)
        self._bank.input_output_coins(ctx, inputs, outputs)
        for item in inputs:
            self.on_coins_transfer(ctx, _parse_address(item.address), None)
        for item in outputs:
            self.on_coins_transfer(ctx, None, _parse_address(item.address))

    def send_coins(
        self, ctx: Context, from_addr: AccAddress, to_addr: AccAddress, amt: Iterable[Coin]
    ) -> None:
        self._bank.send_coins(ctx, from_addr, to_addr, amt)
        self.on_coins_transfer(ctx, from_addr, to_addr)

    def send_coins_from_module_to_account(
        self, ctx: Context, sender_module: str, recipient: AccAddress, amt: Iterable[Coin]
    ) -> None:
        self._bank.send_coins_from_module_to_account(ctx, sender_module, recipient, amt)
        self.on_coins_transfer(ctx, self._module_address(sender_module), recipient)

    def send_coins_from_module_to_module(
        self, ctx: Context, sender_module: str, recipient_module: str, amt: Iterable[Coin]
    ) -> None:
        self._bank.send_coins_from_module_to_module(ctx, sender_module, recipient_module, amt)

    def send_coins_from_account_to_module(
        self, ctx: Context, sender: AccAddress, recipient_module: str, amt: Iterable[Coin]
    ) -> None:
        self._bank.send_coins_from_account_to_module(ctx, sender, recipient_module, amt)
        self.on_coins_transfer(ctx, sender, self._module_address(recipient_module))