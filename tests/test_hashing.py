"""Tests for hash_identifier() - log-safe identifier hashing."""

import re

from offerbridge.infra.hashing import hash_identifier


class TestHashIdentifier:
    # Synthetic JID (not a real group)
    TEST_JID = "120363000000000001@g.us"

    def test_default_length_is_12(self):
        assert len(hash_identifier(self.TEST_JID)) == 12

    def test_custom_length(self):
        assert len(hash_identifier(self.TEST_JID, length=20)) == 20

    def test_is_hex(self):
        assert re.fullmatch(r"[0-9a-f]+", hash_identifier(self.TEST_JID))

    def test_is_deterministic(self):
        assert hash_identifier(self.TEST_JID) == hash_identifier(self.TEST_JID)

    def test_different_inputs_differ(self):
        assert hash_identifier("jid_aaa@g.us") != hash_identifier("jid_bbb@g.us")

    def test_does_not_contain_input(self):
        assert "120363" not in hash_identifier(self.TEST_JID)
