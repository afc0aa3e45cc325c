"""
Test suite for voteflow_core.transaction — building, signing, encoding.

Covers:
  - create_transfer / create_vote_cast field population
  - canonical signing payload
  - sign_transaction and the fragment id
  - envelope encoding and decoding
"""

import json
import unittest

from voteflow_core.crypto_utils import fragment_id
from voteflow_core.settings import BlockDate
from voteflow_core.transaction import (
    TRANSFER,
    VOTE_CAST,
    Transaction,
    create_transfer,
    create_vote_cast,
    sign_transaction,
)
from voteflow_core.wallet import KeyMaterial, WalletIdentity

EXPIRY = BlockDate(9, 20)


class TestCreate(unittest.TestCase):

    def test_transfer_fields(self):
        tx = create_transfer("acc", "dest", 100, 4, counter=3, valid_until=EXPIRY)
        self.assertEqual(tx.tx_type, TRANSFER)
        self.assertEqual(tx.value, 100)
        self.assertEqual(tx.fee, 4)
        self.assertEqual(tx.counter, 3)
        self.assertEqual(tx.cost, 104)
        self.assertFalse(tx.is_signed)

    def test_transfer_requires_positive_value(self):
        with self.assertRaises(ValueError):
            create_transfer("acc", "dest", -1, 4, counter=0, valid_until=EXPIRY)

    def test_vote_cast_fields(self):
        tx = create_vote_cast("acc", "cd" * 32, 7, 1, fee=6, counter=0,
                              valid_until=EXPIRY)
        self.assertEqual(tx.tx_type, VOTE_CAST)
        self.assertEqual(tx.proposal_index, 7)
        self.assertEqual(tx.choice, 1)
        self.assertEqual(tx.cost, 6)

    def test_vote_body_omits_transfer_fields(self):
        body = create_vote_cast("acc", "p", 0, 0, 1, 0, EXPIRY).body()
        self.assertNotIn("destination", body)
        self.assertEqual(body["valid_until"], "9.20")

    def test_signing_payload_is_canonical(self):
        tx = create_transfer("acc", "dest", 1, 1, 0, EXPIRY)
        payload = tx.serialize_for_signing()
        self.assertNotIn(b" ", payload)
        self.assertEqual(list(json.loads(payload)), sorted(json.loads(payload)))


class TestSigning(unittest.TestCase):

    def setUp(self):
        self.identity = WalletIdentity.from_key_material(KeyMaterial(bytes(range(1, 33))))
        self.tx = create_vote_cast(self.identity.account_id, "cd" * 32, 2, 1,
                                   fee=6, counter=5, valid_until=EXPIRY,
                                   block0_hash="ab" * 32)

    def test_unsigned_cannot_be_encoded(self):
        with self.assertRaises(ValueError):
            self.tx.to_bytes()

    def test_sign_sets_fragment_id(self):
        sign_transaction(self.tx, self.identity)
        self.assertTrue(self.tx.is_signed)
        self.assertEqual(self.tx.fragment_id, fragment_id(self.tx.to_bytes()))

    def test_signature_verifies(self):
        sign_transaction(self.tx, self.identity)
        self.assertTrue(self.identity.verify(self.tx.serialize_for_signing(),
                                             self.tx.signature))

    def test_counter_is_signed(self):
        sign_transaction(self.tx, self.identity)
        other = create_vote_cast(self.identity.account_id, "cd" * 32, 2, 1,
                                 fee=6, counter=6, valid_until=EXPIRY,
                                 block0_hash="ab" * 32)
        sign_transaction(other, self.identity)
        self.assertNotEqual(self.tx.fragment_id, other.fragment_id)

    def test_decode_preserves_everything(self):
        sign_transaction(self.tx, self.identity)
        decoded = Transaction.from_bytes(self.tx.to_bytes())
        self.assertEqual(decoded.to_dict(), self.tx.to_dict())
        self.assertEqual(decoded.public_key, self.identity.public_key)

    def test_to_dict_carries_fragment_id(self):
        sign_transaction(self.tx, self.identity)
        self.assertEqual(self.tx.to_dict()["fragment_id"], self.tx.fragment_id)


if __name__ == "__main__":
    unittest.main()
