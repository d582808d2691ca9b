"""
Blockchain Service Module

Client for the deployed Voting contract. It mirrors the ledger surface
on-chain: admin operations and votes become signed transactions, reads
become contract calls, and contract reverts come back as the same typed
ledger errors the in-memory ledger raises.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from eth_account import Account
from web3 import Web3
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

logger = logging.getLogger("blockchain")


class BlockchainConnectionError(Exception):
    """Raised when we can't connect to the blockchain."""

    pass


class ContractNotLoadedError(Exception):
    """Raised when the smart contract or signing account isn't loaded."""

    pass


class TransactionFailedError(Exception):
    """Raised when a transaction is mined but reverted without a reason."""

    pass


# Revert reasons emitted by the contract, checked in order
REVERT_REASONS: List[Tuple[str, type]] = [
    ("only owner", Unauthorized),
    ("already registered", AlreadyRegistered),
    ("not registered voter", NotRegisteredVoter),
    ("voting has ended", VotingEnded),
    ("already voted", AlreadyVoted),
    ("invalid candidate", InvalidCandidate),
    ("still active", VotingStillActive),
]


def translate_revert(error: ContractLogicError) -> Exception:
    """Map a contract revert onto the matching ledger error."""
    message = str(error)
    lowered = message.lower()
    for reason, exc_class in REVERT_REASONS:
        if reason in lowered:
            return exc_class()
    return LedgerError(message)


class ChainLedgerClient:
    """
    Service class for interacting with the Voting smart contract.

    Args:
        config: BLOCKCHAIN_CONFIG-shaped dict (defaults to Django settings)
        w3: an already built Web3 instance, skips provider setup
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, w3: Optional[Web3] = None):
        logger.info("Initializing ChainLedgerClient...")

        self.config = config or settings.BLOCKCHAIN_CONFIG
        self.w3 = w3
        self._connect_to_blockchain()
        self._load_account()
        self._load_contract()

        logger.info("ChainLedgerClient initialized successfully!")

    def _connect_to_blockchain(self) -> None:
        provider_url = self.config["PROVIDER_URL"]
        if self.w3 is None:
            logger.info(f"Connecting to blockchain at {provider_url}...")
            self.w3 = Web3(Web3.HTTPProvider(provider_url))

        if not self.w3.is_connected():
            error_msg = f"Cannot connect to blockchain at {provider_url}"
            logger.error(error_msg)
            raise BlockchainConnectionError(error_msg)

        logger.info(
            f"Connected! Chain ID: {self.w3.eth.chain_id}, Latest Block: {self.w3.eth.block_number}"
        )

    def _load_account(self) -> None:
        """Load the account that signs transactions."""
        private_key = self.config["PRIVATE_KEY"]

        if not private_key:
            logger.warning("No private key configured - read-only mode")
            self.account = None
            return

        self.account = Account.from_key(private_key)
        logger.info(f"Account loaded: {self.account.address}")

    def _load_contract(self) -> None:
        contract_address = self.config["CONTRACT_ADDRESS"]

        if not contract_address:
            logger.warning("No contract address configured - deploy contract first")
            self.contract = None
            return

        abi_path = Path(self.config["ABI_PATH"])
        try:
            with open(abi_path, "r", encoding="utf-8") as f:
                contract_data = json.load(f)
        except FileNotFoundError:
            logger.error(f"ABI file not found at {abi_path}")
            self.contract = None
            return

        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=contract_data["abi"],
        )
        logger.info(f"Contract loaded at: {contract_address}")

    def _ensure_contract_loaded(self) -> None:
        if not self.contract:
            raise ContractNotLoadedError(
                "Smart contract not loaded. "
                "Make sure VOTING_CONTRACT_ADDRESS is set in .env"
            )

    def _ensure_account_loaded(self) -> None:
        if not self.account:
            raise ContractNotLoadedError(
                "No account configured. "
                "Make sure BLOCKCHAIN_PRIVATE_KEY is set in .env"
            )

    def is_connected(self) -> bool:
        return self.w3 is not None and self.w3.is_connected()

    def _send_transaction(self, function) -> Dict[str, Any]:
        """
        Build, sign and send a transaction, then wait for its receipt.

        Raises:
            LedgerError subclass: if the contract reverts with a known reason
            TransactionFailedError: if the transaction reverted without one
        """
        self._ensure_contract_loaded()
        self._ensure_account_loaded()

        try:
            nonce = self.w3.eth.get_transaction_count(self.account.address)
            tx = function.build_transaction(
                {
                    "from": self.account.address,
                    "nonce": nonce,
                    "gas": 500000,
                    "gasPrice": self.w3.eth.gas_price,
                    "chainId": self.config["CHAIN_ID"],
                }
            )
        except ContractLogicError as e:
            # Gas estimation replays the call, so reverts surface here
            logger.warning(f"Contract rejected transaction: {e}")
            raise translate_revert(e) from e

        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        logger.info(f"Transaction sent: {tx_hash.hex()}")

        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.config.get("TX_TIMEOUT", 120)
        )
        if receipt["status"] != 1:
            raise TransactionFailedError(f"Transaction {tx_hash.hex()} was reverted")

        return {
            "tx_hash": tx_hash.hex(),
            "block_number": receipt["blockNumber"],
            "gas_used": receipt["gasUsed"],
            "receipt": receipt,
        }

    def _call(self, name: str, *args):
        """Run a read-only contract function by name"""
        self._ensure_contract_loaded()
        try:
            return getattr(self.contract.functions, name)(*args).call()
        except ContractLogicError as e:
            raise translate_revert(e) from e

    # Admin operations, signed by the configured account

    def add_candidate(self, name: str) -> Dict[str, Any]:
        self._ensure_contract_loaded()
        logger.info(f"Adding candidate on-chain: {name}")
        return self._send_transaction(self.contract.functions.addCandidate(name))

    def register_voter(self, address: str) -> Dict[str, Any]:
        self._ensure_contract_loaded()
        address = Web3.to_checksum_address(address)
        logger.info(f"Registering voter on-chain: {address}")
        return self._send_transaction(self.contract.functions.registerVoter(address))

    def start_voting(self, duration_seconds: int) -> Dict[str, Any]:
        self._ensure_contract_loaded()
        logger.info(f"Starting on-chain voting for {duration_seconds}s")
        return self._send_transaction(
            self.contract.functions.startVoting(duration_seconds)
        )

    def end_voting(self) -> Dict[str, Any]:
        self._ensure_contract_loaded()
        logger.info("Ending on-chain voting")
        return self._send_transaction(self.contract.functions.endVoting())

    def vote(self, candidate_id: int, cid: str = "") -> Dict[str, Any]:
        """Cast the configured account's ballot and decode the VoteCast event."""
        self._ensure_contract_loaded()
        logger.info(f"Casting vote on-chain: candidate={candidate_id}")
        result = self._send_transaction(self.contract.functions.vote(candidate_id, cid))

        events = self.contract.events.VoteCast().process_receipt(result["receipt"])
        result["event"] = (
            {
                "voter": events[0]["args"]["voter"],
                "candidate_id": events[0]["args"]["candidateId"],
                "cid": events[0]["args"]["cid"],
            }
            if events
            else None
        )
        return result

    # Reads

    def get_owner(self) -> str:
        return self._call("owner")

    def is_registered(self, address: str) -> bool:
        return self._call("registeredVoters", Web3.to_checksum_address(address))

    def has_voted(self, address: str) -> bool:
        return self._call("voters", Web3.to_checksum_address(address))

    def get_candidate(self, candidate_id: int) -> Candidate:
        cand_id, name, vote_count = self._call("candidates", candidate_id)
        return Candidate(id=cand_id, name=name, vote_count=vote_count)

    def get_all_candidates(self) -> List[Candidate]:
        return [
            Candidate(id=cand_id, name=name, vote_count=vote_count)
            for cand_id, name, vote_count in self._call("getAllCandidates")
        ]

    def get_all_vote_records(self) -> List[BallotRecord]:
        return [
            BallotRecord(voter=voter, candidate_id=candidate_id, cid=cid)
            for voter, candidate_id, cid in self._call("getAllVoteRecords")
        ]

    def get_voter_count(self) -> int:
        return self._call("getVoterCount")

    def get_total_votes(self) -> int:
        return self._call("getTotalVotes")

    def is_voting_active(self) -> bool:
        return self._call("isVotingActive")

    def get_winner(self) -> int:
        return self._call("getWinner")

    def get_status(self) -> Dict[str, Any]:
        """Get blockchain connection status."""
        connected = self.is_connected()
        return {
            "connected": connected,
            "provider_url": self.config["PROVIDER_URL"],
            "chain_id": self.w3.eth.chain_id if connected else None,
            "latest_block": self.w3.eth.block_number if connected else None,
            "account_address": self.account.address if self.account else None,
            "contract_loaded": self.contract is not None,
            "contract_address": self.config["CONTRACT_ADDRESS"] or None,
        }


# Singleton
_chain_client: Optional[ChainLedgerClient] = None


def get_chain_client() -> ChainLedgerClient:
    """Get or create the chain client singleton."""
    global _chain_client
    if _chain_client is None:
        _chain_client = ChainLedgerClient()
    return _chain_client


def reset_chain_client() -> None:
    """Reset the singleton (useful for testing or reconnecting)."""
    global _chain_client
    _chain_client = None
