from hypothesis import given, strategies as st

from runscope.diff import MAX_DIFF_LINES, DiffKind, compute_diff, diff_stats

lines = st.lists(st.text(alphabet="abc xyz", max_size=6), min_size=1, max_size=30)


def test_documented_example() -> None:
    result = compute_diff("a\nb\nc", "a\nc")
    assert [(line.kind, line.text) for line in result] == [
        (DiffKind.CONTEXT, "a"),
        (DiffKind.REMOVED, "b"),
        (DiffKind.ADDED, "c"),
        (DiffKind.REMOVED, "c"),
    ]
    assert [line.render() for line in result] == ["  a", "- b", "+ c", "- c"]
    assert diff_stats(result) == {"added": 1, "removed": 2}


@given(lines)
def test_identical_inputs_are_all_context(items) -> None:
    text = "\n".join(items)
    result = compute_diff(text, text)
    assert all(line.kind is DiffKind.CONTEXT for line in result)
    assert [line.text for line in result] == items
    assert [line.line_number for line in result] == list(range(1, len(items) + 1))


@given(lines, lines)
def test_removed_and_added_lines_come_from_their_side(left, right) -> None:
    width = max(len(left), len(right))
    left = left + [""] * (width - len(left))
    right = right + [""] * (width - len(right))
    for line in compute_diff("\n".join(left), "\n".join(right)):
        index = line.line_number - 1
        if line.kind is DiffKind.REMOVED:
            assert left[index] == line.text
        elif line.kind is DiffKind.ADDED:
            assert right[index] == line.text
        else:
            assert left[index] == right[index] == line.text


def test_blank_side_does_not_emit_empty_change() -> None:
    result = compute_diff("a\n", "a\nb")
    assert [(line.kind, line.text) for line in result] == [(DiffKind.CONTEXT, "a"), (DiffKind.ADDED, "b")]


def test_output_is_capped() -> None:
    big = "\n".join(str(i) for i in range(MAX_DIFF_LINES + 50))
    result = compute_diff(big, big)
    assert len(result) == MAX_DIFF_LINES
