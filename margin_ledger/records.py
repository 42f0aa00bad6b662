"""
records.py - Fixed-Size Binary Record Layout

AssetGroup and MarginAccount persist as fixed-size little-endian records.
Every field has a fixed width; the size depends only on the number of
assets N (markets = N - 1), so changing N means a new layout.

Field encodings:
    ref / identity   32 bytes, UTF-8, NUL padded
    integer          u64 (u8 for decimals)
    FixedPoint       16 bytes, the raw 64.64 value
    rate parameter   u64, annual rate * 10**9 (must be exact)

Header (both kinds):
    u64 kind flags | u8 token count | 7 bytes padding

Loading is checked once, up front: the owning program, the kind flags and
the exact size must all match or RecordError is raised.
"""

from __future__ import annotations
from decimal import Decimal
import struct
from typing import List, Optional, Union

from .core import (
    Ref, RecordKind, RecordError, REF_BYTES, U64_MAX, NULL_REF,
    ASSET_GROUP_FLAGS, MARGIN_ACCOUNT_FLAGS,
)
from .fixed import FixedPoint
from .interest import InterestRateModel
from .group import AssetGroup, AssetSlot, AssetIndex
from .account import MarginAccount


HEADER = struct.Struct("<QB7x")
RATE_SCALE = 10 ** 9

_REF = f"{REF_BYTES}s"
_FP = "16s"


def _group_format(n: int) -> str:
    m = n - 1
    return "<" + "".join([
        _REF * n,                 # mints
        _REF * n,                 # vaults
        ("Q" + _FP + _FP) * n,    # indexes: last_update, borrow, deposit
        _REF * m,                 # markets
        _REF * m,                 # oracles
        _REF,                     # signer_key
        _REF,                     # admin
        _FP * n,                  # total_deposits
        _FP * n,                  # total_borrows
        _FP + _FP,                # maint_ratio, init_ratio
        "QQQ",                    # optimal_util, optimal_rate, max_rate
        "Q" * n,                  # borrow_limits
        "B" * n,                  # mint_decimals
        "B" * m,                  # oracle_decimals
    ])


def _account_format(n: int) -> str:
    m = n - 1
    return "<" + _REF + _REF + _FP * n + _FP * n + _REF * m


def asset_group_size(num_tokens: int) -> int:
    return HEADER.size + struct.calcsize(_group_format(num_tokens))


def margin_account_size(num_tokens: int) -> int:
    return HEADER.size + struct.calcsize(_account_format(num_tokens))


# ============================================================================
# FIELD CODECS
# ============================================================================

def _enc_ref(ref: Ref) -> bytes:
    data = ref.encode("utf-8")
    if len(data) > REF_BYTES:
        raise RecordError(f"reference {ref!r} longer than {REF_BYTES} bytes")
    if b"\x00" in data:
        raise RecordError(f"reference {ref!r} contains a NUL byte")
    return data


def _dec_ref(data: bytes) -> Ref:
    return data.rstrip(b"\x00").decode("utf-8")


def _enc_fp(value: FixedPoint) -> bytes:
    return value.raw.to_bytes(16, "little")


def _dec_fp(data: bytes) -> FixedPoint:
    return FixedPoint(int.from_bytes(data, "little"))


def _enc_rate(value: Decimal) -> int:
    scaled = value * RATE_SCALE
    if scaled != scaled.to_integral_value() or not 0 <= scaled <= U64_MAX:
        raise RecordError(f"rate parameter {value} is not representable in 1e-9 units")
    return int(scaled)


def _dec_rate(value: int) -> Decimal:
    return Decimal(value) / RATE_SCALE


def _header(flags: int, num_tokens: int) -> bytes:
    if not 2 <= num_tokens <= 255:
        raise RecordError(f"token count {num_tokens} outside [2, 255]")
    return HEADER.pack(flags, num_tokens)


def _split_header(data: bytes):
    if len(data) < HEADER.size:
        raise RecordError(f"record of {len(data)} bytes is shorter than its header")
    flags, num_tokens = HEADER.unpack_from(data)
    if num_tokens < 2:
        raise RecordError(f"record declares {num_tokens} tokens")
    return flags, num_tokens


# ============================================================================
# ASSET GROUP
# ============================================================================

def pack_asset_group(group: AssetGroup) -> bytes:
    n = group.num_tokens
    fields: List[Union[bytes, int]] = []
    fields += [_enc_ref(s.mint) for s in group.slots]
    fields += [_enc_ref(s.vault) for s in group.slots]
    for s in group.slots:
        fields += [s.index.last_update, _enc_fp(s.index.borrow), _enc_fp(s.index.deposit)]
    fields += [_enc_ref(r) for r in group.markets]
    fields += [_enc_ref(r) for r in group.oracles]
    fields += [_enc_ref(group.signer_key), _enc_ref(group.admin)]
    fields += [_enc_fp(s.total_deposits) for s in group.slots]
    fields += [_enc_fp(s.total_borrows) for s in group.slots]
    fields += [_enc_fp(group.maint_ratio), _enc_fp(group.init_ratio)]
    model = group.rate_model
    fields += [_enc_rate(model.optimal_util), _enc_rate(model.optimal_rate), _enc_rate(model.max_rate)]
    fields += [s.borrow_limit for s in group.slots]
    fields += [s.decimals for s in group.slots]
    fields += list(group.oracle_decimals)
    try:
        body = struct.pack(_group_format(n), *fields)
    except struct.error as e:
        raise RecordError(f"cannot pack asset group {group.key}: {e}") from e
    return _header(group.flags, n) + body


def unpack_asset_group(data: bytes, key: Ref = NULL_REF) -> AssetGroup:
    flags, n = _split_header(data)
    if len(data) != asset_group_size(n):
        raise RecordError(f"asset group record is {len(data)} bytes, expected {asset_group_size(n)}")
    m = n - 1
    it = iter(struct.unpack_from(_group_format(n), data, HEADER.size))

    mints = [_dec_ref(next(it)) for _ in range(n)]
    vaults = [_dec_ref(next(it)) for _ in range(n)]
    indexes = [
        AssetIndex(last_update=next(it), borrow=_dec_fp(next(it)), deposit=_dec_fp(next(it)))
        for _ in range(n)
    ]
    markets = [_dec_ref(next(it)) for _ in range(m)]
    oracles = [_dec_ref(next(it)) for _ in range(m)]
    signer_key = _dec_ref(next(it))
    admin = _dec_ref(next(it))
    total_deposits = [_dec_fp(next(it)) for _ in range(n)]
    total_borrows = [_dec_fp(next(it)) for _ in range(n)]
    maint_ratio = _dec_fp(next(it))
    init_ratio = _dec_fp(next(it))
    try:
        rate_model = InterestRateModel(
            optimal_util=_dec_rate(next(it)),
            optimal_rate=_dec_rate(next(it)),
            max_rate=_dec_rate(next(it)),
        )
    except ValueError as e:
        raise RecordError(f"asset group record holds an invalid rate model: {e}") from e
    borrow_limits = [next(it) for _ in range(n)]
    mint_decimals = [next(it) for _ in range(n)]
    oracle_decimals = [next(it) for _ in range(m)]

    slots = [
        AssetSlot(
            mint=mints[i],
            vault=vaults[i],
            decimals=mint_decimals[i],
            index=indexes[i],
            total_deposits=total_deposits[i],
            total_borrows=total_borrows[i],
            borrow_limit=borrow_limits[i],
        )
        for i in range(n)
    ]
    return AssetGroup(
        key=key,
        slots=slots,
        markets=markets,
        oracles=oracles,
        oracle_decimals=oracle_decimals,
        maint_ratio=maint_ratio,
        init_ratio=init_ratio,
        admin=admin,
        signer_key=signer_key,
        rate_model=rate_model,
        flags=flags,
    )


# ============================================================================
# MARGIN ACCOUNT
# ============================================================================

def pack_margin_account(account: MarginAccount) -> bytes:
    n = account.num_tokens
    if len(account.borrows) != n or len(account.open_orders) != n - 1:
        raise RecordError(f"margin account {account.key} has inconsistent field lengths")
    fields: List[Union[bytes, int]] = [_enc_ref(account.group), _enc_ref(account.owner)]
    fields += [_enc_fp(v) for v in account.deposits]
    fields += [_enc_fp(v) for v in account.borrows]
    fields += [_enc_ref(r) for r in account.open_orders]
    return _header(account.flags, n) + struct.pack(_account_format(n), *fields)


def unpack_margin_account(data: bytes, key: Ref = NULL_REF) -> MarginAccount:
    flags, n = _split_header(data)
    if len(data) != margin_account_size(n):
        raise RecordError(f"margin account record is {len(data)} bytes, expected {margin_account_size(n)}")
    it = iter(struct.unpack_from(_account_format(n), data, HEADER.size))
    group = _dec_ref(next(it))
    owner = _dec_ref(next(it))
    deposits = [_dec_fp(next(it)) for _ in range(n)]
    borrows = [_dec_fp(next(it)) for _ in range(n)]
    open_orders = [_dec_ref(next(it)) for _ in range(n - 1)]
    return MarginAccount(
        key=key,
        group=group,
        owner=owner,
        deposits=deposits,
        borrows=borrows,
        open_orders=open_orders,
        flags=flags,
    )


# ============================================================================
# CHECKED LOAD
# ============================================================================

_EXPECTED_FLAGS = {
    RecordKind.ASSET_GROUP: int(ASSET_GROUP_FLAGS),
    RecordKind.MARGIN_ACCOUNT: int(MARGIN_ACCOUNT_FLAGS),
}


def load_checked(
    data: bytes,
    kind: RecordKind,
    owner: Ref,
    program_id: Ref,
    key: Ref = NULL_REF,
    group: Optional[Ref] = None,
) -> Union[AssetGroup, MarginAccount]:
    """
    Decode a record after verifying it is what the caller expects.

    Args:
        data: Raw record bytes
        kind: RecordKind.ASSET_GROUP or RecordKind.MARGIN_ACCOUNT
        owner: Program that owns the record in the host store
        program_id: This program's identity
        key: Reference the record was loaded from
        group: For margin accounts, the group the account must belong to

    Raises:
        RecordError: on a foreign owner, wrong or uninitialized kind, wrong
            size, or (for accounts) a different group.
    """
    if kind not in _EXPECTED_FLAGS:
        raise RecordError(f"{kind!r} is not a loadable record kind")
    if owner != program_id:
        raise RecordError(f"record {key!r} is owned by {owner!r}, not {program_id!r}")

    flags, _ = _split_header(data)
    if flags != _EXPECTED_FLAGS[kind]:
        raise RecordError(
            f"record {key!r} has kind flags {flags:#x}, expected {_EXPECTED_FLAGS[kind]:#x}"
        )

    if kind is RecordKind.ASSET_GROUP:
        return unpack_asset_group(data, key)

    account = unpack_margin_account(data, key)
    if group is not None and account.group != group:
        raise RecordError(f"margin account {key!r} belongs to group {account.group!r}, not {group!r}")
    return account
