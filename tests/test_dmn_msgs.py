import json

import pytest

from cyberkit.chain import AccAddress, Coin
from cyberkit.dmn.msgs import (
    CidVersionError,
    InvalidParticleError,
    MsgChangeThoughtBlock,
    MsgChangeThoughtGasPrice,
    MsgChangeThoughtInput,
    MsgChangeThoughtName,
    MsgChangeThoughtParticle,
    MsgChangeThoughtPeriod,
    MsgCreateThought,
    MsgForgetThought,
    decode_cid,
)
from cyberkit.dmn.types import (
    BadCallDataError,
    BadGasPriceError,
    BadNameError,
    BadTriggerError,
    InvalidAddressError,
    Load,
    Trigger,
)

ADDR = AccAddress(bytes(range(20)), "bostrom")
PROGRAM = str(ADDR)
CID_V0 = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"
CID_V1 = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"
DENOM = "boot"


def make_create(**changes):
    values = dict(
        program=PROGRAM,
        trigger=Trigger(period=5),
        load=Load("aGVsbG8=", Coin(DENOM, 10)),
        name="job",
        particle=CID_V0,
    )
    values.update(changes)
    return MsgCreateThought(**values)


def test_decode_cid_v0():
    cid = decode_cid(CID_V0)
    assert cid.version == 0
    assert len(cid.multihash) == 34
    assert cid.multihash[:2] == b"\x12\x20"


def test_decode_cid_v1():
    cid = decode_cid(CID_V1)
    assert cid.version == 1
    assert cid.codec == 0x70
    assert cid.multihash[:2] == b"\x12\x20"


@pytest.mark.parametrize("text", ["", "Q", "Qm", "not a cid", "zzzz"])
def test_decode_cid_rejects_garbage(text):
    with pytest.raises(ValueError):
        decode_cid(text)


def test_valid_create_thought_has_program_signer():
    msg = make_create()
    assert msg.validate_basic(DENOM) is None
    assert msg.get_signers() == [ADDR]


@pytest.mark.parametrize(
    "changes, error",
    [
        ({"program": "bogus"}, InvalidAddressError),
        ({"load": Load("", Coin(DENOM, 10))}, BadCallDataError),
        ({"load": Load("x" * 2049, Coin(DENOM, 10))}, BadCallDataError),
        ({"load": Load("aGVsbG8=", Coin("other", 10))}, BadGasPriceError),
        ({"load": Load("aGVsbG8=", Coin(DENOM, 0))}, BadGasPriceError),
        ({"trigger": Trigger(0, 0)}, BadTriggerError),
        ({"trigger": Trigger(5, 7)}, BadTriggerError),
        ({"name": ""}, BadNameError),
        ({"name": "n" * 33}, BadNameError),
        ({"particle": "garbage"}, InvalidParticleError),
        ({"particle": CID_V1}, CidVersionError),
    ],
)
def test_create_thought_rejects(changes, error):
    with pytest.raises(error):
        make_create(**changes).validate_basic(DENOM)


def test_create_thought_limits_are_inclusive():
    msg = make_create(name="n" * 32, load=Load("x" * 2048, Coin(DENOM, 1)))
    assert msg.validate_basic(DENOM) is None
    assert msg.get_signers()[0] == ADDR


def test_create_sign_bytes_sorted_with_string_numbers():
    raw = make_create().get_sign_bytes()
    decoded = json.loads(raw)
    assert list(decoded) == sorted(decoded)
    assert decoded["load"]["gas_price"] == {"amount": "10", "denom": DENOM}
    assert decoded["trigger"] == {"block": "0", "period": "5"}
    assert b" " not in raw


def test_forget_sign_bytes_layout():
    raw = MsgForgetThought(PROGRAM, "job").get_sign_bytes()
    assert raw == ('{"name":"job","program":"%s"}' % PROGRAM).encode()


def test_sign_bytes_escape_html_characters():
    raw = MsgForgetThought(PROGRAM, "a<b").get_sign_bytes()
    assert b"\\u003c" in raw
    assert json.loads(raw)["name"] == "a<b"


def test_forget_thought_checks():
    with pytest.raises(BadNameError):
        MsgForgetThought(PROGRAM, "").validate_basic()
    with pytest.raises(InvalidAddressError):
        MsgForgetThought("bogus", "job").validate_basic()


def test_change_name_checks_both_names():
    with pytest.raises(BadNameError):
        MsgChangeThoughtName(PROGRAM, "job", "").validate_basic()
    with pytest.raises(BadNameError):
        MsgChangeThoughtName(PROGRAM, "", "new").validate_basic()
    assert json.loads(MsgChangeThoughtName(PROGRAM, "job", "new").get_sign_bytes())[
        "new_name"
    ] == "new"


def test_change_particle_checks():
    with pytest.raises(CidVersionError):
        MsgChangeThoughtParticle(PROGRAM, "job", CID_V1).validate_basic()
    with pytest.raises(InvalidParticleError):
        MsgChangeThoughtParticle(PROGRAM, "job", "nope").validate_basic()
    with pytest.raises(BadNameError):
        MsgChangeThoughtParticle(PROGRAM, "", CID_V0).validate_basic()


def test_change_input_checks():
    with pytest.raises(BadCallDataError):
        MsgChangeThoughtInput(PROGRAM, "job", "").validate_basic()
    msg = MsgChangeThoughtInput(PROGRAM, "job", "aGk=")
    assert json.loads(msg.get_sign_bytes())["input"] == "aGk="


def test_change_gas_price_checks():
    with pytest.raises(BadGasPriceError):
        MsgChangeThoughtGasPrice(PROGRAM, "job", Coin("other", 5)).validate_basic(DENOM)
    with pytest.raises(BadGasPriceError):
        MsgChangeThoughtGasPrice(PROGRAM, "job", Coin(DENOM, 0)).validate_basic(DENOM)
    msg = MsgChangeThoughtGasPrice(PROGRAM, "job", Coin(DENOM, 5))
    assert msg.get_signers() == [ADDR]


def test_change_period_and_block_require_nonzero():
    with pytest.raises(BadTriggerError):
        MsgChangeThoughtPeriod(PROGRAM, "job", 0).validate_basic()
    with pytest.raises(BadTriggerError):
        MsgChangeThoughtBlock(PROGRAM, "job", 0).validate_basic()
    assert json.loads(MsgChangeThoughtPeriod(PROGRAM, "job", 7).get_sign_bytes())["period"] == "7"
    assert json.loads(MsgChangeThoughtBlock(PROGRAM, "job", 9).get_sign_bytes())["block"] == "9"


def test_get_signers_rejects_bad_program():
    with pytest.raises(ValueError):
        MsgForgetThought("bogus", "job").get_signers()