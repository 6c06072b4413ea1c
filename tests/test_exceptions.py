# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import pytest

import ldapconn


class TestRaiseForResult:
    def test_success(self) -> None:
        ldapconn.raise_for_result(ldapconn.LDAPResult(ldapconn.LDAPResultCode.SUCCESS))

    def test_failure_from_response(self) -> None:
        response = ldapconn.DelResponse(
            message_id=1,
            controls=[],
            result=ldapconn.LDAPResult(
                ldapconn.LDAPResultCode.NO_SUCH_OBJECT,
                matched_dn="DC=test",
                diagnostics_message="entry not found",
            ),
        )

        with pytest.raises(ldapconn.LDAPResultError) as exc:
            ldapconn.raise_for_result(response, "delete failed")

        assert exc.value.result is response.result
        assert str(exc.value) == (
            "Received LDAPResult error delete failed - NO_SUCH_OBJECT - Matched DN DC=test - entry not found"
        )

    def test_allowed_codes(self) -> None:
        result = ldapconn.LDAPResult(ldapconn.LDAPResultCode.COMPARE_FALSE)

        ldapconn.raise_for_result(
            result,
            allowed=[ldapconn.LDAPResultCode.COMPARE_TRUE, ldapconn.LDAPResultCode.COMPARE_FALSE],
        )

    def test_search_result(self) -> None:
        search = ldapconn.SearchResult()
        search.finalize(ldapconn.LDAPResult(ldapconn.LDAPResultCode.SIZE_LIMIT_EXCEEDED))

        with pytest.raises(ldapconn.LDAPResultError, match="SIZE_LIMIT_EXCEEDED"):
            ldapconn.raise_for_result(search)

    def test_unfinished_search(self) -> None:
        with pytest.raises(ValueError, match="not completed"):
            ldapconn.raise_for_result(ldapconn.SearchResult())


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_type",
        [
            ldapconn.TransportError,
            ldapconn.ProtocolError,
            ldapconn.ConnectionClosedError,
            ldapconn.LDAPResultError,
        ],
    )
    def test_subclass(self, exc_type: type) -> None:
        assert issubclass(exc_type, ldapconn.LDAPError)

    def test_protocol_error_response(self) -> None:
        err = ldapconn.ProtocolError("bad")

        assert err.response is None
        assert str(err) == "bad"
