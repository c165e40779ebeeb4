import pytest

from scheduling.selection import parse_service_ids, required_slot_count


def test_parse_service_ids_forms():
    assert parse_service_ids(None) == []
    assert parse_service_ids("3,1, 3") == [3, 1]
    assert parse_service_ids([2, "5"]) == [2, 5]
    assert parse_service_ids(["1,2", "4"]) == [1, 2, 4]
    assert parse_service_ids(7) == [7]


@pytest.mark.parametrize("raw", ["x", [True], [1.5], ["1", None]])
def test_parse_service_ids_rejects_non_integers(raw):
    with pytest.raises(ValueError):
        parse_service_ids(raw)


def test_required_slot_count_rounds_up(app):
    assert required_slot_count(30) == 2
    assert required_slot_count(40) == 3
    assert required_slot_count(15) == 1
