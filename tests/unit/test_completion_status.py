from stageasset.core.completion import compute_status


def test_no_latest_submissions_is_pending() -> None:
    assert compute_status({1, 2}, set()) == "pending"
    assert compute_status(set(), set()) == "pending"


def test_empty_required_set_is_complete_once_anything_is_submitted() -> None:
    assert compute_status(set(), {7}) == "complete"


def test_missing_required_id_is_partial() -> None:
    assert compute_status({1, 2}, {1}) == "partial"
    assert compute_status({1}, {2}) == "partial"


def test_all_required_ids_present_is_complete() -> None:
    assert compute_status({1, 2}, {1, 2}) == "complete"
    assert compute_status({1}, {1, 3}) == "complete"


def test_status_depends_only_on_inputs() -> None:
    required = [3, 1, 2]
    latest = [2, 3]
    first = compute_status(required, latest)
    assert compute_status(list(reversed(required)), list(reversed(latest))) == first
    assert required == [3, 1, 2]
    assert latest == [2, 3]
