"""Index of every account's ampere stake, refreshed at the end of each block."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ..chain import AccAddress, AccountKeeper, Context
from .proxy import Proxy

MODULE_NAME = "cyberbank"

_GLOBAL_ACCOUNT_NUMBER_KEY = b"globalAccountNumber"
_U64_MASK = 2**64 - 1


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift >= 70:
            raise ValueError("varint overflow")


def _decode_uint64_value(data: bytes) -> int:
    """Decode a protobuf UInt64Value message."""
    value = 0
    pos = 0
    while pos < len(data):
        tag, pos = _read_varint(data, pos)
        field_number, wire_type = tag >> 3, tag & 7
        if field_number == 0:
            raise ValueError("illegal field number 0")
        if wire_type == 0:
            number, pos = _read_varint(data, pos)
            if field_number == 1:
                value = number & _U64_MASK
        elif wire_type == 1:
            pos += 8
        elif wire_type == 2:
            length, pos = _read_varint(data, pos)
            pos += length
        elif wire_type == 5:
            pos += 4
        else:
            raise ValueError(f"illegal wire type {wire_type}")
        if pos > len(data):
            raise ValueError("unexpected end of data")
    return value


class IndexedKeeper:
    """Keeps the ampere stake of every account number, current and pending."""

    def __init__(
        self,
        proxy: Proxy,
        account_keeper: AccountKeeper,
        *,
        auth_store_key: str = "acc",
    ) -> None:
        self.proxy = proxy
        self._account_keeper = account_keeper
        self._auth_store_key = auth_store_key
        self._total_stake: dict[int, int] = {}
        self._new_total_stake: dict[int, int] = {}
        self._accounts_to_update: list[AccAddress] = []
        proxy.add_hook(self._on_transfer)

    def _on_transfer(
        self, ctx: Context, from_addr: AccAddress | None, to_addr: AccAddress | None
    ) -> None:
        if from_addr is not None:
            self._accounts_to_update.append(from_addr)
        if to_addr is not None:
            self._accounts_to_update.append(to_addr)

    def _collector(self, ctx: Context, target: dict[int, int]) -> Callable[[Any], bool]:
        def collect(account: Any) -> bool:
            target[account.account_number] = self.proxy.get_account_total_stake_ampere(
                ctx, account.address
            )
            return False

        return collect

    def load_state(self, rank_ctx: Context, fresh_ctx: Context) -> None:
        self._total_stake = {}
        self._account_keeper.iterate_accounts(rank_ctx, self._collector(rank_ctx, self._total_stake))
        self._new_total_stake = {}
        self._account_keeper.iterate_accounts(
            fresh_ctx, self._collector(fresh_ctx, self._new_total_stake)
        )

    def initialize_stake_ampere(self, account: int, stake: int) -> None:
        self._total_stake[account] = stake
        self._new_total_stake[account] = stake

    def total_stakes_ampere(self) -> dict[int, int]:
        return dict(self._total_stake)

    def detect_users_stake_ampere_change(self, ctx: Context) -> bool:
        """Apply pending stakes; report whether any known account's stake changed."""
        changed = False
        for number, stake in self._new_total_stake.items():
            if number in self._total_stake and self._total_stake[number] != stake:
                changed = True
            self._total_stake[number] = stake
        return changed

    def update_accounts_stake_ampere(self, ctx: Context) -> None:
        for addr in self._accounts_to_update:
            ctx.logger.debug("account to update: %s", addr)
            stake = self.proxy.get_account_total_stake_ampere(ctx, addr)
            account = self._account_keeper.get_account(ctx, addr)
            if account is None:
                ctx.logger.info("skipped account: %s", addr)
                continue
            self._new_total_stake[account.account_number] = stake

        # The stored number is the next one to assign, so existing ids end at next - 1.
        next_number = self.get_next_account_number(ctx)
        if len(self._new_total_stake) != next_number:
            for number in range(next_number - 1, 0, -1):
                if number not in self._new_total_stake:
                    ctx.logger.info("added to stake index: account %d", number)
                    self._new_total_stake[number] = 0

        self._accounts_to_update = []

    def get_next_account_number(self, ctx: Context) -> int:
        stored = ctx.kv_store(self._auth_store_key).get(_GLOBAL_ACCOUNT_NUMBER_KEY)
        if stored is None:
            return 0
        if isinstance(stored, int):
            return stored
        return _decode_uint64_value(bytes(stored))

    def init_genesis(self, ctx: Context) -> None:
        for account in self._account_keeper.get_all_accounts(ctx):
            self.initialize_stake_ampere(
                account.account_number,
                self.proxy.get_account_total_stake_ampere(ctx, account.address),
            )


def end_blocker(ctx: Context, keeper: IndexedKeeper) -> None:
    keeper.update_accounts_stake_ampere(ctx)