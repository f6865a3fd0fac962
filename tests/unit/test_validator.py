from unittest.mock import Mock

import pytest
from dbferry.errors import ValidationError
from dbferry.validator import Validator


@pytest.fixture
def target():
    """Mock target connector."""
    return Mock()


def test_validate_row_count_success(target):
    """Test matching growth passes."""
    target.get_table_row_count.side_effect = [100, 150]
    validator = Validator(target, "orders")

    assert validator.capture_baseline() == 100
    result = validator.validate_row_count(50)

    assert result == {'is_valid': True, 'before': 100, 'after': 150, 'inserted': 50, 'expected': 50}
    target.get_table_row_count.assert_called_with("orders")


def test_validate_row_count_mismatch(target):
    """Test silently rejected rows are detected."""
    target.get_table_row_count.side_effect = [0, 7]
    validator = Validator(target, "orders")
    validator.capture_baseline()

    with pytest.raises(ValidationError, match="expected 10 inserted rows but got 7"):
        validator.validate_row_count(10)


def test_validate_without_baseline(target):
    """Test validation needs a baseline."""
    with pytest.raises(ValidationError, match="no baseline"):
        Validator(target, "orders").validate_row_count(1)
