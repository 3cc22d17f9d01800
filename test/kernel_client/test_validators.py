import asyncio

import pytest
from eth_abi import decode
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from web3 import Web3

from kernel_client.errors import (
    ConfigurationError,
    MissingEnableSignatureError,
    ValidatorChainMismatchError,
    ValidatorUninitializedError,
)
from kernel_client.validators import (
    ECDSAValidator,
    ERC165SessionKeyValidator,
    KillSwitchValidator,
    SocialRecoveryValidator,
    ValidatorMode,
)
from kernel_client.validators.base import DUMMY_ECDSA_SIGNATURE
from kernel_client.validators.codec import EnableFrame
from kernel_client.validators.ecdsa import ECDSA_VALIDATOR_ADDRESS

from kernel_stubs import OWNER_KEY, SESSION_KEY, CountingSigner, StubReader, complete_user_operation

EXECUTOR = "0x" + "55" * 20
SESSION_VALIDATOR = "0x" + "66" * 20


def _ecdsa(reader: StubReader, **kwargs) -> ECDSAValidator:
    return ECDSAValidator(signer=CountingSigner(OWNER_KEY), chain_id=1, reader=reader, **kwargs)


def _recover(digest: bytes, signature: bytes) -> str:
    return Account.recover_message(encode_defunct(primitive=digest), signature=signature)


def test_sudo_mode_when_validator_is_the_default() -> None:
    validator = _ecdsa(StubReader(default_validator=ECDSA_VALIDATOR_ADDRESS.lower()))
    user_op = complete_user_operation()

    signature = asyncio.run(validator.get_signature(user_op))

    assert signature[:4] == ValidatorMode.SUDO.value
    assert len(signature) == 4 + 65
    assert _recover(validator.user_operation_hash(user_op), signature[4:]) == validator.signer.address


def test_plugin_mode_when_selector_routes_to_validator() -> None:
    validator = _ecdsa(StubReader(execution_validator=ECDSA_VALIDATOR_ADDRESS))

    mode = asyncio.run(validator.resolve_mode(complete_user_operation()))
    dummy = asyncio.run(validator.get_dummy_signature(complete_user_operation()))

    assert mode is ValidatorMode.PLUGIN
    assert dummy == ValidatorMode.PLUGIN.value + DUMMY_ECDSA_SIGNATURE


def test_enable_mode_requires_an_enable_signature() -> None:
    validator = _ecdsa(StubReader(), executor=EXECUTOR)

    assert asyncio.run(validator.resolve_mode(complete_user_operation())) is ValidatorMode.ENABLE
    with pytest.raises(MissingEnableSignatureError):
        asyncio.run(validator.get_signature(complete_user_operation()))


def test_enable_mode_produces_enable_frame() -> None:
    validator = _ecdsa(StubReader(), executor=EXECUTOR, valid_until=99, enable_signature=b"\x05" * 65)
    user_op = complete_user_operation()

    frame = EnableFrame.decode(asyncio.run(validator.get_signature(user_op)))

    assert frame.validator == ECDSA_VALIDATOR_ADDRESS.lower()
    assert frame.executor == EXECUTOR
    assert frame.valid_until == 99
    assert frame.enable_data == bytes.fromhex(validator.signer.address[2:])
    assert frame.enable_signature == b"\x05" * 65
    assert _recover(validator.user_operation_hash(user_op), frame.signature) == validator.signer.address


def test_enable_frame_needs_an_executor() -> None:
    validator = _ecdsa(StubReader(), enable_signature=b"\x05" * 65)
    with pytest.raises(ConfigurationError):
        asyncio.run(validator.get_signature(complete_user_operation()))


@pytest.mark.parametrize(
    "configured, expected",
    [
        (ValidatorMode.PLUGIN, ValidatorMode.ENABLE),
        (ValidatorMode.SUDO, ValidatorMode.SUDO),
    ],
)
def test_failed_account_reads_fall_back_to_configured_mode(configured, expected) -> None:
    validator = _ecdsa(StubReader(fail=True), mode=configured)
    assert asyncio.run(validator.resolve_mode(complete_user_operation())) is expected


def test_unbound_validator_is_uninitialized() -> None:
    validator = ECDSAValidator(signer=CountingSigner(OWNER_KEY))

    assert not validator.is_initialized
    with pytest.raises(ValidatorUninitializedError):
        asyncio.run(validator.get_signature(complete_user_operation()))

    validator.initialize(chain_id=10, reader=StubReader())
    validator.initialize(chain_id=10, reader=StubReader())
    assert validator.chain_id == 10


def test_initialize_refuses_to_rebind_to_another_chain() -> None:
    validator = _ecdsa(StubReader())

    with pytest.raises(ValidatorChainMismatchError) as excinfo:
        validator.initialize(chain_id=137, reader=StubReader())

    assert (excinfo.value.bound_chain_id, excinfo.value.chain_id) == (1, 137)
    assert validator.chain_id == 1


def test_for_chain_returns_rebound_copy_for_other_chains() -> None:
    signer = CountingSigner(OWNER_KEY)
    mainnet_reader, polygon_reader = StubReader(), StubReader()
    validator = ECDSAValidator(signer=signer)

    assert validator.for_chain(chain_id=1, reader=mainnet_reader) is validator
    assert validator.for_chain(chain_id=1, reader=polygon_reader) is validator
    polygon = validator.for_chain(chain_id=137, reader=polygon_reader)

    assert polygon is not validator
    assert (validator.chain_id, polygon.chain_id) == (1, 137)
    assert polygon.signer is signer
    user_op = complete_user_operation()
    signature = asyncio.run(polygon.sign_user_operation(user_op))
    assert _recover(polygon.user_operation_hash(user_op), signature) == signer.address
    assert polygon.user_operation_hash(user_op) != validator.user_operation_hash(user_op)


def test_user_operation_hash_changes_with_chain() -> None:
    user_op = complete_user_operation()
    mainnet = _ecdsa(StubReader())
    optimism = ECDSAValidator(signer=CountingSigner(OWNER_KEY), chain_id=10, reader=StubReader())
    assert mainnet.user_operation_hash(user_op) != optimism.user_operation_hash(user_op)


def test_approve_executor_signs_validator_approval() -> None:
    owner = _ecdsa(StubReader())
    session = ERC165SessionKeyValidator(
        signer=CountingSigner(SESSION_KEY),
        validator_address=SESSION_VALIDATOR,
        interface_id="0x80ac58cd",
        address_offset=16,
        selector="0xa9059cbb",
        valid_until=500,
    )
    kernel = "0x" + "ab" * 20

    signature = asyncio.run(owner.approve_executor(kernel, "0xa9059cbb", EXECUTOR, 500, 0, session))

    typed_data = owner.enable_typed_data(
        kernel=kernel,
        selector="0xa9059cbb",
        executor=EXECUTOR,
        valid_until=500,
        valid_after=0,
        validator_address=SESSION_VALIDATOR,
        enable_data=asyncio.run(session.get_enable_data()),
    )
    assert typed_data["domain"]["name"] == "Kernel"
    assert typed_data["domain"]["version"] == "0.0.2"
    recovered = Account.recover_message(encode_typed_data(full_message=typed_data), signature=signature)
    assert recovered == owner.signer.address


def test_session_key_enable_data_layout() -> None:
    session = ERC165SessionKeyValidator(
        signer=CountingSigner(SESSION_KEY),
        validator_address=SESSION_VALIDATOR,
        interface_id="0x80ac58cd",
        address_offset=16,
        selector="0xa9059cbb",
        valid_until=7,
        valid_after=3,
    )

    data = asyncio.run(session.get_enable_data())

    assert len(data) == 20 + 4 + 4 + 6 + 6 + 4
    assert data[:20] == bytes.fromhex(session.signer.address[2:])
    assert data[20:24] == bytes.fromhex("80ac58cd")
    assert data[24:28] == bytes.fromhex("a9059cbb")
    assert int.from_bytes(data[28:34], "big") == 7
    assert int.from_bytes(data[34:40], "big") == 3
    assert int.from_bytes(data[40:44], "big") == 16


def test_session_key_needs_a_selector() -> None:
    with pytest.raises(ConfigurationError):
        ERC165SessionKeyValidator(
            signer=CountingSigner(SESSION_KEY),
            validator_address=SESSION_VALIDATOR,
            interface_id="0x80ac58cd",
            address_offset=16,
        )


def test_kill_switch_prefixes_pause_timestamp() -> None:
    validator = KillSwitchValidator(
        signer=CountingSigner(OWNER_KEY),
        chain_id=1,
        reader=StubReader(),
        paused_until=1_800_000_000,
    )
    user_op = complete_user_operation()

    signature = asyncio.run(validator.sign_user_operation(user_op))

    paused = signature[:6]
    assert int.from_bytes(paused, "big") == 1_800_000_000
    digest = bytes(Web3.keccak(paused + validator.user_operation_hash(user_op)))
    assert _recover(digest, signature[6:]) == validator.signer.address
    assert len(validator.dummy_user_operation_signature()) == len(signature)


def test_social_recovery_signs_until_threshold() -> None:
    guardians = [CountingSigner("0x" + f"{index:02x}" * 32) for index in (0x31, 0x32, 0x33)]
    validator = SocialRecoveryValidator(
        guardians=[(guardian, 1) for guardian in guardians],
        threshold=2,
        validator_address="0x" + "77" * 20,
        chain_id=1,
        reader=StubReader(),
    )
    user_op = complete_user_operation()

    signature = asyncio.run(validator.sign_user_operation(user_op))

    ordered = sorted(guardians, key=lambda guardian: guardian.address.lower())
    digest = validator.user_operation_hash(user_op)
    assert len(signature) == 2 * 65
    assert _recover(digest, signature[:65]) == ordered[0].address
    assert _recover(digest, signature[65:]) == ordered[1].address
    assert ordered[2].calls == 0
    assert len(validator.dummy_user_operation_signature()) == len(signature)

    addresses, weights, threshold, delay = decode(
        ["address[]", "uint24[]", "uint24", "uint48"],
        asyncio.run(validator.get_enable_data()),
    )
    assert [address.lower() for address in addresses] == [g.address.lower() for g in ordered]
    assert list(weights) == [1, 1, 1]
    assert (threshold, delay) == (2, 0)


def test_social_recovery_rejects_unreachable_threshold() -> None:
    with pytest.raises(ConfigurationError):
        SocialRecoveryValidator(
            guardians=[(CountingSigner(OWNER_KEY), 1)],
            threshold=2,
            validator_address="0x" + "77" * 20,
        )
