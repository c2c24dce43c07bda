import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message, MessageV0, to_bytes_versioned
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction, VersionedTransaction

from sol_copilot.core.errors import SubmissionRejected
from sol_copilot.core.wallet.provider import LocalKeypairWallet, load_keypair
from sol_copilot.core.wallet.session import WalletSession
from sol_copilot.core.wallet.state import (
    AccountChanged,
    Connected,
    Disconnected,
    WalletState,
    reduce_wallet_state,
)


class TestReduceWalletState:
    def test_connect(self):
        state = reduce_wallet_state(WalletState(), Connected("A"))
        assert state == WalletState(connected=True, address="A")

    def test_disconnect_clears_address(self):
        state = reduce_wallet_state(WalletState(True, "A"), Disconnected())
        assert state == WalletState()

    def test_account_changed(self):
        state = reduce_wallet_state(WalletState(True, "A"), AccountChanged("B"))
        assert state == WalletState(connected=True, address="B")

    def test_account_changed_to_none_disconnects(self):
        state = reduce_wallet_state(WalletState(True, "A"), AccountChanged(None))
        assert state == WalletState()

    def test_unknown_event(self):
        with pytest.raises(TypeError):
            reduce_wallet_state(WalletState(), object())


def test_load_keypair_accepts_base58_and_json_array():
    keypair = Keypair()

    assert load_keypair(str(keypair)).pubkey() == keypair.pubkey()
    assert load_keypair(json.dumps(list(bytes(keypair)))).pubkey() == keypair.pubkey()


def _ix(payer: Keypair):
    return transfer(
        TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1)
    )


def _confirmation(err=None):
    return SimpleNamespace(value=[SimpleNamespace(err=err)])


def _rpc_client(confirm_err=None):
    return SimpleNamespace(
        send_raw_transaction=AsyncMock(return_value=SimpleNamespace(value="sig-xyz")),
        confirm_transaction=AsyncMock(return_value=_confirmation(confirm_err)),
        get_balance=AsyncMock(return_value=SimpleNamespace(value=42)),
        get_token_accounts_by_owner_json_parsed=AsyncMock(
            return_value=SimpleNamespace(value=[])
        ),
    )


class TestLocalKeypairWallet:
    @pytest.mark.asyncio
    async def test_connect_emits_address(self):
        keypair = Keypair()
        wallet = LocalKeypairWallet(keypair, _rpc_client())
        seen = []
        wallet.on("connect", seen.append)

        address = await wallet.connect()

        assert address == str(keypair.pubkey())
        assert seen == [address]

    @pytest.mark.asyncio
    async def test_off_removes_listener(self):
        wallet = LocalKeypairWallet(Keypair(), _rpc_client())
        seen = []
        wallet.on("disconnect", lambda: seen.append("x"))
        wallet.on("connect", seen.append)
        wallet.off("connect", seen.append)

        await wallet.connect()
        await wallet.disconnect()

        assert seen == ["x"]

    def test_unknown_event_rejected(self):
        wallet = LocalKeypairWallet(Keypair(), _rpc_client())
        with pytest.raises(ValueError):
            wallet.on("explode", print)

    @pytest.mark.asyncio
    async def test_get_balance(self):
        keypair = Keypair()
        wallet = LocalKeypairWallet(keypair, _rpc_client())

        assert await wallet.get_balance(str(keypair.pubkey())) == 42

    @pytest.mark.asyncio
    async def test_signs_and_sends_versioned_transaction(self):
        keypair = Keypair()
        client = _rpc_client()
        wallet = LocalKeypairWallet(keypair, client)
        message = MessageV0.try_compile(keypair.pubkey(), [_ix(keypair)], [], Hash.new_unique())
        unsigned = VersionedTransaction.populate(message, [])

        signature = await wallet.sign_and_send_transaction(unsigned)

        assert signature == "sig-xyz"
        sent = VersionedTransaction.from_bytes(client.send_raw_transaction.await_args.args[0])
        assert sent.signatures[0] == keypair.sign_message(to_bytes_versioned(message))
        client.confirm_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_on_chain_transaction_is_rejected(self):
        keypair = Keypair()
        client = _rpc_client(confirm_err="InstructionError(SlippageToleranceExceeded)")
        wallet = LocalKeypairWallet(keypair, client)
        message = MessageV0.try_compile(keypair.pubkey(), [_ix(keypair)], [], Hash.new_unique())

        with pytest.raises(SubmissionRejected, match="SlippageToleranceExceeded"):
            await wallet.sign_and_send_transaction(VersionedTransaction.populate(message, []))

    @pytest.mark.asyncio
    async def test_signs_legacy_transaction(self):
        keypair = Keypair()
        wallet = LocalKeypairWallet(keypair, _rpc_client())
        message = Message.new_with_blockhash([_ix(keypair)], keypair.pubkey(), Hash.new_unique())

        signed = wallet.sign(Transaction.new_unsigned(message))

        assert isinstance(signed, Transaction)
        signed.verify()


class TestWalletSession:
    @pytest.mark.asyncio
    async def test_connect_triggers_snapshot_and_disconnect_detaches(self):
        keypair = Keypair()
        wallet = LocalKeypairWallet(keypair, _rpc_client())
        builder = MagicMock()
        builder.build_snapshot = AsyncMock(return_value=None)
        session = WalletSession(wallet, builder)
        session.attach()

        await wallet.connect()
        await session.wait_idle()

        builder.build_snapshot.assert_awaited_once_with(str(keypair.pubkey()))
        assert session.state.connected is True

        await wallet.disconnect()

        builder.detach.assert_called_once()
        assert session.state == WalletState()

    @pytest.mark.asyncio
    async def test_account_change_starts_pass_for_new_wallet(self):
        first, second = Keypair(), Keypair()
        wallet = LocalKeypairWallet(first, _rpc_client())
        builder = MagicMock()
        builder.build_snapshot = AsyncMock(return_value=None)
        session = WalletSession(wallet, builder)
        session.attach()

        await wallet.connect()
        wallet.switch_account(second)
        await session.wait_idle()

        calls = [c.args[0] for c in builder.build_snapshot.await_args_list]
        assert calls == [str(first.pubkey()), str(second.pubkey())]
        assert session.state.address == str(second.pubkey())

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self):
        wallet = LocalKeypairWallet(Keypair(), _rpc_client())
        builder = MagicMock()
        builder.build_snapshot = AsyncMock(return_value=None)
        session = WalletSession(wallet, builder)
        session.attach()
        session.close()

        await wallet.connect()
        await asyncio.sleep(0)

        builder.build_snapshot.assert_not_called()
        assert session.state == WalletState()
