"""End-of-block processing for the bandwidth module."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..chain import AccAddress, Context
from .keeper import BandwidthMeter


@dataclass
class StakeChangeTracker:
    """Collects addresses whose stake changed during the block."""

    accounts: list[AccAddress] = field(default_factory=list)

    def hook(self, ctx: Context, from_addr: AccAddress | None, to_addr: AccAddress | None) -> None:
        if ctx.check_tx:
            return
        if from_addr is not None:
            self.accounts.append(from_addr)
        if to_addr is not None:
            self.accounts.append(to_addr)

    def update_accounts_max_bandwidth(self, ctx: Context, meter: BandwidthMeter) -> None:
        for addr in self.accounts:
            meter.update_account_max_bandwidth(ctx, addr)
        self.accounts = []


def end_blocker(ctx: Context, meter: BandwidthMeter, tracker: StakeChangeTracker) -> None:
    params = meter.get_params(ctx)
    if ctx.block_height != 0 and ctx.block_height % params.adjust_price_period == 0:
        meter.adjust_price(ctx)
    meter.commit_block_bandwidth(ctx)
    tracker.update_accounts_max_bandwidth(ctx, meter)