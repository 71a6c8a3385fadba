"""
Tests for row validation rules.
Tests identifier formats, names, date parsing and duplicate detection.
"""

import pytest
from pathlib import Path
from datetime import date, timedelta

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from validation import RecordValidator, normalize_identifier, parse_date_of_birth
from models import IdentifierType, ValidationError


class TestRecordValidator:
    """Tests for RecordValidator."""

    def test_valid_pan_row(self):
        """A well-formed PAN row passes."""
        validator = RecordValidator(IdentifierType.PAN)
        result = validator.validate(1, "ABCDE1234F", "Ravi Kumar", "1990-03-01", dob_required=True)

        assert result.is_valid
        assert not result.has_errors
        assert result.normalized["identifier"] == "ABCDE1234F"

    def test_lowercase_pan_normalized(self):
        validator = RecordValidator(IdentifierType.PAN)
        result = validator.validate(1, " abcde1234f ", "Ravi Kumar", "1990-03-01")
        assert result.normalized["identifier"] == "ABCDE1234F"

    def test_invalid_pan_format(self):
        validator = RecordValidator(IdentifierType.PAN)
        result = validator.validate(1, "ABCD12345F", "Ravi Kumar", "1990-03-01")

        assert not result.is_valid
        assert result.issues[0].issue_type == "format"

    def test_aadhaar_with_spaces(self):
        """Spaces inside an Aadhaar number are ignored."""
        validator = RecordValidator(IdentifierType.AADHAAR)
        result = validator.validate(1, "1234 5678 9012", "Sita Devi")

        assert result.is_valid
        assert result.normalized["identifier"] == "123456789012"

    def test_aadhaar_wrong_length(self):
        validator = RecordValidator(IdentifierType.AADHAAR)
        assert not validator.validate(1, "12345678901", "Sita Devi").is_valid

    def test_short_name(self):
        validator = RecordValidator(IdentifierType.PAN)
        result = validator.validate(1, "ABCDE1234F", "R", "1990-03-01")

        assert not result.is_valid
        assert result.issues[0].field == "name"

    def test_future_date_of_birth(self):
        validator = RecordValidator(IdentifierType.PAN)
        tomorrow = (date.today() + timedelta(days=1)).isoformat()
        result = validator.validate(1, "ABCDE1234F", "Ravi Kumar", tomorrow)

        assert not result.is_valid
        assert result.issues[0].issue_type == "future_date"

    def test_missing_dob_only_when_required(self):
        """A missing DOB is an error for PAN rows and fine for Aadhaar rows."""
        validator = RecordValidator(IdentifierType.PAN)
        assert not validator.validate(1, "ABCDE1234F", "Ravi Kumar", None, dob_required=True).is_valid
        assert validator.validate(2, "PQRSX6789K", "Meena Shah", None, dob_required=False).is_valid

    def test_duplicate_is_warning(self):
        """A repeated identifier is flagged but the row is kept."""
        validator = RecordValidator(IdentifierType.PAN)
        validator.validate(1, "ABCDE1234F", "Ravi Kumar", "1990-03-01")
        result = validator.validate(2, "ABCDE1234F", "Ravi Kumar", "1990-03-01")

        assert result.is_valid
        assert result.has_warnings
        assert result.issues[0].issue_type == "duplicate"

    def test_reason_lists_errors(self):
        validator = RecordValidator(IdentifierType.PAN)
        result = validator.validate(1, None, None, None, dob_required=True)

        assert "identifier: PAN is missing" in result.reason
        assert "name: Name is missing" in result.reason
        assert "date_of_birth: Date of birth is missing" in result.reason


class TestDateParsing:
    """Tests for date of birth parsing."""

    @pytest.mark.parametrize("value", ["1990-03-01", "1990/03/01", "01/03/1990", "01-03-1990"])
    def test_accepted_formats(self, value):
        assert parse_date_of_birth(value) == date(1990, 3, 1)

    def test_unparseable(self):
        with pytest.raises(ValidationError):
            parse_date_of_birth("March 1st")

    def test_empty(self):
        with pytest.raises(ValidationError):
            parse_date_of_birth("")


class TestNormalizeIdentifier:
    """Tests for identifier normalization."""

    def test_pan(self):
        assert normalize_identifier(IdentifierType.PAN, " abcde1234f") == "ABCDE1234F"

    def test_aadhaar(self):
        assert normalize_identifier(IdentifierType.AADHAAR, "1234 5678\t9012") == "123456789012"
