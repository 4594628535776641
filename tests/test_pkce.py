"""Tests for PKCE and CSRF state generation."""

import base64
import hashlib
import re

from cloudlink.auth.pkce import compute_challenge, generate_pkce_pair, generate_state

_B64URL = re.compile(r"^[A-Za-z0-9_-]+$")


class TestPKCE:
    def test_challenge_is_sha256_of_verifier(self) -> None:
        pair = generate_pkce_pair()
        digest = hashlib.sha256(pair.verifier.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).decode().rstrip("=")
        assert pair.challenge == expected
        assert pair.method == "S256"

    def test_rfc7636_appendix_b_vector(self) -> None:
        verifier = "dBjftJeZ4CVP-1mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert compute_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_verifier_format(self) -> None:
        pair = generate_pkce_pair()
        # 32 bytes, base64url without padding
        assert len(pair.verifier) == 43
        assert _B64URL.match(pair.verifier)
        assert _B64URL.match(pair.challenge)
        assert "=" not in pair.challenge

    def test_no_collisions(self) -> None:
        pairs = [generate_pkce_pair() for _ in range(1000)]
        assert len({p.verifier for p in pairs}) == 1000
        assert len({p.challenge for p in pairs}) == 1000

    def test_repr_hides_verifier(self) -> None:
        pair = generate_pkce_pair()
        assert pair.verifier not in repr(pair)


class TestState:
    def test_state_format(self) -> None:
        state = generate_state()
        assert len(state) == 32
        assert re.match(r"^[0-9a-f]+$", state)

    def test_state_unique(self) -> None:
        assert len({generate_state() for _ in range(1000)}) == 1000
