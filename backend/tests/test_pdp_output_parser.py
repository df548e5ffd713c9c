"""
Tests for pdptool output parsing
"""
import pytest

from pdpgate.core.errors import OutputParseError
from pdpgate.services.pdp_output_parser import (PENDING, parse_proof_set_id,
                                                parse_root_cid, parse_tx_hash,
                                                require)


class TestParseRootCid:
    """upload-file output"""

    def test_last_non_empty_line(self):
        output = b"uploading...\nprogress 100%\nbaga6ea4seaq\n\n"
        assert parse_root_cid(output) == "baga6ea4seaq"

    def test_subroot_suffix_dropped(self):
        assert parse_root_cid("log line\nbaga-root:baga-subroot\n") == "baga-root"

    def test_cuts_at_first_colon(self):
        assert parse_root_cid("a:b:c") == "a"

    def test_blank_output(self):
        assert parse_root_cid(b"") == ""
        assert parse_root_cid("\n  \n") == ""
        assert parse_root_cid(None) == ""

    def test_idempotent(self):
        cid = parse_root_cid("x\nroot-abc:sub")
        assert parse_root_cid(cid) == cid


class TestParseTxHash:
    """create-proof-set output"""

    def test_location_header(self):
        output = (
            "Sending request...\n"
            "Location: /pdp/proof-sets/created/0xdeadbeef\n"
            "done\n"
        )
        assert parse_tx_hash(output) == "0xdeadbeef"

    def test_full_url_in_location(self):
        output = "Location: https://sp.example/pdp/proof-sets/created/0xabc  \n"
        assert parse_tx_hash(output) == "0xabc"

    def test_location_without_created_path(self):
        assert parse_tx_hash("Location: /somewhere/else\n") == ""

    def test_missing_marker(self):
        assert parse_tx_hash("no header here") == ""


class TestParseProofSetId:
    """get-proof-set-create-status output"""

    def test_pending(self):
        assert parse_proof_set_id("ProofSet Created: false\n") is PENDING
        assert parse_proof_set_id("").pending

    def test_created(self):
        status = parse_proof_set_id("ProofSet Created: true\nProofSet Id: 7\n")
        assert status.created
        assert status.proof_set_id == "7"

    def test_case_insensitive_markers(self):
        status = parse_proof_set_id("proofset created: TRUE\nPROOFSET ID: 42")
        assert status.created
        assert status.proof_set_id == "42"

    def test_created_without_id(self):
        status = parse_proof_set_id("ProofSet Created: true\n")
        assert status.created
        assert status.proof_set_id == ""


def test_require_raises_with_field_name():
    with pytest.raises(OutputParseError) as exc_info:
        require("", "tx hash", b"garbage")
    assert exc_info.value.message == "could not determine tx hash"
    assert exc_info.value.output == "garbage"


def test_require_returns_value():
    assert require("abc", "root CID") == "abc"
