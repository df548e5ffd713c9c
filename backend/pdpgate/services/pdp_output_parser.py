"""
Extract typed values from pdptool's free-text output.

pdptool mixes log lines and results on one stream, so each parser looks for
its own marker and ignores everything else.
"""
from dataclasses import dataclass
from typing import Optional, Union

from pdpgate.core.errors import OutputParseError, decode_output

LOCATION_PREFIX = "Location:"
CREATED_PATH_SEGMENT = "/pdp/proof-sets/created/"
CREATED_MARKER = "proofset created: true"
PROOF_SET_ID_MARKER = "proofset id:"

Output = Union[bytes, str, None]


@dataclass(frozen=True)
class ProofSetCreateStatus:
    """Result of parsing get-proof-set-create-status output"""
    created: bool
    proof_set_id: Optional[str] = None

    @property
    def pending(self) -> bool:
        return not self.created


PENDING = ProofSetCreateStatus(created=False)


def parse_root_cid(output: Output) -> str:
    """
    Root CID printed by upload-file.

    The CID is the last non-empty line. upload-file may append the subroot
    after a colon (``<root>:<subroot>``); only the root part is kept.
    Returns an empty string for blank output.
    """
    lines = [line.strip() for line in decode_output(output).splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return ""
    return lines[-1].split(":", 1)[0].strip()


def parse_tx_hash(output: Output) -> str:
    """Transaction hash from the ``Location:`` header echoed by create-proof-set"""
    for line in decode_output(output).splitlines():
        line = line.strip()
        if not line.startswith(LOCATION_PREFIX):
            continue
        idx = line.find(CREATED_PATH_SEGMENT)
        if idx >= 0:
            return line[idx + len(CREATED_PATH_SEGMENT):].strip()
    return ""


def parse_proof_set_id(output: Output) -> ProofSetCreateStatus:
    """
    Creation status from get-proof-set-create-status.

    Returns PENDING until the output reports ``ProofSet Created: true``.
    Once created, ``proof_set_id`` holds the text after ``ProofSet Id:`` up to
    the end of that line; it is empty if the id line is missing.
    """
    text = decode_output(output)
    lowered = text.lower()
    if CREATED_MARKER not in lowered:
        return PENDING

    idx = lowered.find(PROOF_SET_ID_MARKER)
    if idx < 0:
        return ProofSetCreateStatus(created=True, proof_set_id="")

    rest = text[idx + len(PROOF_SET_ID_MARKER):]
    end = rest.find("\n")
    value = rest if end < 0 else rest[:end]
    return ProofSetCreateStatus(created=True, proof_set_id=value.strip())


def require(value: Optional[str], field: str, output: Output = None) -> str:
    """Return ``value`` or raise OutputParseError naming the missing field"""
    if not value:
        raise OutputParseError(field, output)
    return value
