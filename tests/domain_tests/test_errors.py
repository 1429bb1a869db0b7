"""Tests for domain/errors.py."""

import pytest

from openstore.domain.errors import DEFAULT_MESSAGES, STATUS_BY_KIND, ErrorKind, SubmissionError


class TestErrorTaxonomy:
    @pytest.mark.parametrize("kind", list(ErrorKind))
    def test_every_kind_has_status_and_message(self, kind):
        assert STATUS_BY_KIND[kind] in (400, 404, 409, 500)
        assert DEFAULT_MESSAGES[kind]

    def test_expected_statuses(self):
        assert SubmissionError(ErrorKind.NOT_FOUND).status_code == 404
        assert SubmissionError(ErrorKind.CONCURRENT_UPDATE).status_code == 409
        assert SubmissionError(ErrorKind.DUPLICATE_PACKAGE).status_code == 400

    def test_only_storage_failure_is_infrastructure(self):
        infra = [k for k in ErrorKind if SubmissionError(k).is_infrastructure]
        assert infra == [ErrorKind.STORAGE_FAILURE]

    def test_custom_message_and_detail(self):
        err = SubmissionError(ErrorKind.MALFORMED_MANIFEST, "no version", missing=["version"])
        assert str(err) == "no version"
        assert err.detail == {"missing": ["version"]}
        assert "MalformedManifest" in repr(err)
