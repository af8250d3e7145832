"""Tests for incremental object extraction from a chunked text stream."""

from swimflow.stream import StreamObjectExtractor, extract_objects, scan_braces

LANE = '{"command": "createLane", "id": "Lane_1", "label": "Sales", "x": 190, "y": 80, "width": 970, "height": 200}'
SHAPE = '{"command": "addShape", "id": "Activity_1", "parent": "Lane_1", "x": 250, "y": 120}'


class TestExtractObjects:

    def test_two_objects_and_remainder(self) -> None:
        candidates, rest = extract_objects(f"noise {LANE}\n{SHAPE} {{\"command\"")
        assert candidates == [LANE, SHAPE]
        assert rest == ' {"command"'

    def test_nested_braces(self) -> None:
        text = '{"a": {"b": {"c": 1}}}'
        assert extract_objects(text) == ([text], "")

    def test_incomplete_object_kept(self) -> None:
        assert extract_objects('{"a": 1') == ([], '{"a": 1')

    def test_no_object(self) -> None:
        assert extract_objects("just prose") == ([], "just prose")


class TestStreamObjectExtractor:

    def test_object_split_across_three_chunks(self) -> None:
        whole = StreamObjectExtractor()
        expected = whole.feed(LANE)

        ex = StreamObjectExtractor()
        out = []
        for chunk in (LANE[:7], LANE[7:60], LANE[60:]):
            out.extend(ex.feed(chunk))
        assert out == expected
        assert len(out) == 1
        assert ex.emitted == 1

    def test_emits_as_soon_as_complete(self) -> None:
        ex = StreamObjectExtractor()
        assert ex.feed(LANE[:-1]) == []
        assert ex.feed(LANE[-1:] + " " + SHAPE[:10]) == [
            {"command": "createLane", "id": "Lane_1", "label": "Sales",
             "x": 190, "y": 80, "width": 970, "height": 200},
        ]
        assert ex.pending == SHAPE[:10]

    def test_arrival_order(self) -> None:
        ex = StreamObjectExtractor()
        objs = ex.feed(LANE + SHAPE + LANE.replace("Lane_1", "Lane_2"))
        assert [o.get("id") for o in objs] == ["Lane_1", "Activity_1", "Lane_2"]

    def test_fenced_stream(self) -> None:
        ex = StreamObjectExtractor()
        objs = ex.feed("```json\n" + LANE + "\n" + SHAPE + "\n```")
        assert [o["command"] for o in objs] == ["createLane", "addShape"]
        assert ex.close() == ""

    def test_malformed_object_skipped(self) -> None:
        ex = StreamObjectExtractor()
        objs = ex.feed('{"command": createLane}' + SHAPE)
        assert [o["id"] for o in objs] == ["Activity_1"]
        assert ex.discarded == 1

    def test_arithmetic_repaired_in_stream(self) -> None:
        ex = StreamObjectExtractor()
        objs = ex.feed('{"command": "addShape", "x": 190 + 60, "y": 80 * 2}')
        assert objs[0]["x"] == 250
        assert objs[0]["y"] == 160

    def test_close_reports_leftover(self) -> None:
        ex = StreamObjectExtractor()
        ex.feed(LANE + '{"command": "addSh')
        assert ex.close() == '{"command": "addSh'
        assert ex.pending == ""

    def test_scan_state_carried_between_feeds(self) -> None:
        ex = StreamObjectExtractor()
        ex.feed('{"a": {"b": ')
        assert (ex._depth, ex._scan) == (2, len('{"a": {"b": '))
        assert ex.feed('1}}') == [{"a": {"b": 1}}]
        assert ex._depth == 0


class TestScanBraces:

    def test_finds_closing_brace(self) -> None:
        assert scan_braces('{"a": {"b": 1}} tail') == (14, 0)

    def test_incomplete_reports_depth(self) -> None:
        assert scan_braces('{"a": {"b"') == (-1, 2)

    def test_resumes_from_saved_state(self) -> None:
        text = '{"a": {"b": 1}}'
        end, depth = scan_braces(text[:8])
        assert (end, depth) == (-1, 2)
        assert scan_braces(text, 8, depth) == (14, 0)
