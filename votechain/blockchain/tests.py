from unittest import mock

from django.conf import settings
from django.test import SimpleTestCase
from django.urls import reverse
from hexbytes import HexBytes
from rest_framework import status
from web3.exceptions import ContractLogicError

from ledger.core import BallotRecord, Candidate
from ledger.exceptions import (
    AlreadyRegistered,
    AlreadyVoted,
    InvalidCandidate,
    LedgerError,
    NotRegisteredVoter,
    Unauthorized,
    VotingEnded,
    VotingStillActive,
)

from .services import (
    BlockchainConnectionError,
    ChainLedgerClient,
    ContractNotLoadedError,
    TransactionFailedError,
    translate_revert,
)

# Hardhat's first development account
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
VOTER1 = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TX_HASH = HexBytes("0x" + "ab" * 32)


def make_config(**overrides):
    config = {
        "PROVIDER_URL": "http://127.0.0.1:8545",
        "PRIVATE_KEY": PRIVATE_KEY,
        "CONTRACT_ADDRESS": CONTRACT,
        "CHAIN_ID": 31337,
        "ABI_PATH": settings.BLOCKCHAIN_CONFIG["ABI_PATH"],
        "TX_TIMEOUT": 5,
    }
    config.update(overrides)
    return config


def make_w3():
    w3 = mock.MagicMock()
    w3.is_connected.return_value = True
    w3.eth.chain_id = 31337
    w3.eth.block_number = 12
    w3.eth.gas_price = 1
    w3.eth.get_transaction_count.return_value = 0
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": 1,
        "blockNumber": 13,
        "gasUsed": 50000,
    }
    return w3


def legacy_tx(*_args, **_kwargs):
    return {
        "to": CONTRACT,
        "data": "0x",
        "value": 0,
        "nonce": 0,
        "gas": 500000,
        "gasPrice": 1,
        "chainId": 31337,
    }


class TranslateRevertTest(SimpleTestCase):
    def test_known_reasons(self):
        cases = {
            "execution reverted: Only owner can perform this action": Unauthorized,
            "execution reverted: Voter already registered": AlreadyRegistered,
            "execution reverted: Not registered voter": NotRegisteredVoter,
            "execution reverted: Voting has ended": VotingEnded,
            "execution reverted: Already voted": AlreadyVoted,
            "execution reverted: Invalid candidate": InvalidCandidate,
            "execution reverted: Voting is still active": VotingStillActive,
        }
        for message, expected in cases.items():
            self.assertIsInstance(translate_revert(ContractLogicError(message)), expected)

    def test_unknown_reason_keeps_message(self):
        error = translate_revert(ContractLogicError("execution reverted: out of gas"))
        self.assertIs(type(error), LedgerError)
        self.assertIn("out of gas", str(error))


class ChainLedgerClientTest(SimpleTestCase):
    def setUp(self):
        self.w3 = make_w3()
        self.client = ChainLedgerClient(config=make_config(), w3=self.w3)
        self.contract = self.w3.eth.contract.return_value

    def test_loads_account_and_contract(self):
        self.assertEqual(self.client.account.address, OWNER)
        self.assertEqual(self.w3.eth.contract.call_args.kwargs["address"], CONTRACT)
        self.assertTrue(self.client.get_status()["contract_loaded"])

    def test_connection_failure(self):
        w3 = make_w3()
        w3.is_connected.return_value = False
        with self.assertRaises(BlockchainConnectionError):
            ChainLedgerClient(config=make_config(), w3=w3)

    def test_read_only_mode_cannot_send(self):
        client = ChainLedgerClient(config=make_config(PRIVATE_KEY=""), w3=make_w3())
        with self.assertRaises(ContractNotLoadedError):
            client.end_voting()

    def test_missing_contract(self):
        client = ChainLedgerClient(config=make_config(CONTRACT_ADDRESS=""), w3=make_w3())
        with self.assertRaises(ContractNotLoadedError):
            client.get_winner()

    def test_add_candidate_sends_transaction(self):
        self.contract.functions.addCandidate.return_value.build_transaction.side_effect = legacy_tx

        result = self.client.add_candidate("Alice")

        self.contract.functions.addCandidate.assert_called_with("Alice")
        self.w3.eth.send_raw_transaction.assert_called_once()
        self.assertEqual(result["tx_hash"], TX_HASH.hex())
        self.assertEqual(result["block_number"], 13)

    def test_vote_decodes_event(self):
        function = self.contract.functions.vote.return_value
        function.build_transaction.side_effect = legacy_tx
        self.contract.events.VoteCast.return_value.process_receipt.return_value = [
            {"args": {"voter": OWNER, "candidateId": 1, "cid": "QmCID"}}
        ]

        result = self.client.vote(1, "QmCID")

        self.contract.functions.vote.assert_called_with(1, "QmCID")
        self.assertEqual(result["event"], {"voter": OWNER, "candidate_id": 1, "cid": "QmCID"})

    def test_revert_becomes_ledger_error(self):
        function = self.contract.functions.vote.return_value
        function.build_transaction.side_effect = ContractLogicError(
            "execution reverted: Already voted"
        )
        with self.assertRaises(AlreadyVoted):
            self.client.vote(0, "Qm")
        self.w3.eth.send_raw_transaction.assert_not_called()

    def test_reverted_receipt(self):
        self.contract.functions.endVoting.return_value.build_transaction.side_effect = legacy_tx
        self.w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "blockNumber": 13,
            "gasUsed": 50000,
        }
        with self.assertRaises(TransactionFailedError):
            self.client.end_voting()

    def test_register_voter_checksums_address(self):
        self.contract.functions.registerVoter.return_value.build_transaction.side_effect = legacy_tx
        self.client.register_voter(VOTER1.lower())
        self.contract.functions.registerVoter.assert_called_with(VOTER1)

    def test_reads(self):
        functions = self.contract.functions
        functions.getAllCandidates.return_value.call.return_value = [(0, "Alice", 2), (1, "Bob", 1)]
        functions.getAllVoteRecords.return_value.call.return_value = [(VOTER1, 0, "QmCID1")]
        functions.getTotalVotes.return_value.call.return_value = 3
        functions.registeredVoters.return_value.call.return_value = True

        self.assertEqual(
            self.client.get_all_candidates(),
            [Candidate(0, "Alice", 2), Candidate(1, "Bob", 1)],
        )
        self.assertEqual(self.client.get_all_vote_records(), [BallotRecord(VOTER1, 0, "QmCID1")])
        self.assertEqual(self.client.get_total_votes(), 3)
        self.assertTrue(self.client.is_registered(VOTER1))

    def test_winner_while_active(self):
        self.contract.functions.getWinner.return_value.call.side_effect = ContractLogicError(
            "execution reverted: Voting is still active"
        )
        with self.assertRaises(VotingStillActive):
            self.client.get_winner()


class BlockchainViewsTest(SimpleTestCase):
    def setUp(self):
        patcher = mock.patch("blockchain.views.get_chain_client")
        self.get_client = patcher.start()
        self.addCleanup(patcher.stop)
        self.chain = self.get_client.return_value

    def test_status(self):
        self.chain.get_status.return_value = {"connected": True}
        response = self.client.get(reverse("blockchain:status"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.json()["data"]["connected"])

    def test_status_unavailable(self):
        self.get_client.side_effect = BlockchainConnectionError("down")
        response = self.client.get(reverse("blockchain:status"))
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_results(self):
        self.chain.get_all_candidates.return_value = [Candidate(0, "Alice", 3), Candidate(1, "Bob", 1)]
        self.chain.get_total_votes.return_value = 4
        self.chain.get_voter_count.return_value = 4
        self.chain.is_voting_active.return_value = False

        data = self.client.get(reverse("blockchain:results")).json()["data"]

        self.assertEqual(data["summary"], {"total_votes": 4, "voter_count": 4})
        self.assertEqual(data["results"][0]["percentage"], 75.0)
        self.assertEqual(data["source"], "blockchain")

    def test_winner_still_active(self):
        self.chain.get_winner.side_effect = VotingStillActive()
        response = self.client.get(reverse("blockchain:winner"))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json()["code"], "voting_still_active")

    def test_winner(self):
        self.chain.get_winner.return_value = 0
        self.chain.get_candidate.return_value = Candidate(0, "Alice", 3)
        response = self.client.get(reverse("blockchain:winner"))
        self.assertEqual(response.json()["data"], {"id": 0, "name": "Alice", "vote_count": 3})
