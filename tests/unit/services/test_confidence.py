import math

import pytest

from bidsmart.database.models import DocumentStatus
from bidsmart.schemas.callback import DocumentResult
from bidsmart.services.normalizer import (
    document_status_for,
    map_line_item_type,
    map_stages,
    numeric_confidence,
    to_confidence_level,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (95, "high"),
        (90, "high"),
        (89.9, "medium"),
        (70, "medium"),
        (69.99, "low"),
        (0, "low"),
        (100, "high"),
        ("92", "high"),
        ("High", "high"),
        ("medium", "medium"),
        ("low", "low"),
        ("manual", "manual"),
        (None, "manual"),
        (True, "manual"),
        ("unsure", "manual"),
        (-1, "low"),
        (101, "high"),
        (150, "high"),
        ("100.5", "high"),
        (math.nan, "manual"),
    ],
)
def test_to_confidence_level(value, expected):
    assert to_confidence_level(value) == expected


def test_numeric_confidence_keeps_numbers_only():
    assert numeric_confidence(87) == 87.0
    assert numeric_confidence("87.5") == 87.5
    assert numeric_confidence("high") is None
    assert numeric_confidence(None) is None


def test_low_confidence_and_partial_results_need_review():
    success = DocumentResult(status="success")
    partial = DocumentResult(status="partial")

    assert document_status_for(success, "high") == DocumentStatus.EXTRACTED
    assert document_status_for(success, "medium") == DocumentStatus.EXTRACTED
    assert document_status_for(success, "low") == DocumentStatus.REVIEW_NEEDED
    assert document_status_for(success, "manual") == DocumentStatus.REVIEW_NEEDED
    assert document_status_for(partial, "high") == DocumentStatus.REVIEW_NEEDED


def test_line_item_types_and_stage_codes():
    assert map_line_item_type("Labor") == "labor"
    assert map_line_item_type("crane rental") == "other"
    assert map_line_item_type(None) == "other"
    assert map_stages("single") == 1
    assert map_stages("two") == 2
    assert map_stages("Variable") == 99
    assert map_stages("modulating") is None
