from ariachat.stream.parser import SSEFrameParser, StreamFrame, iter_frames, parse_record

STREAM = (
    b'event: message\ndata: {"id":"m1","role":"assistant","content":"hi"}\n\n'
    b": keep-alive\n\n"
    b"id: 7\ndata: line one\ndata: line two\n\n"
    b"event: ping\n\n"
    b'event: final_response\r\ndata: {"content":"bye"}\r\n\r\n'
    b"data: h\xc3\xa9llo \xe2\x9c\x93\n\n"
    b"data: tail"
)

EXPECTED = [
    StreamFrame(data='{"id":"m1","role":"assistant","content":"hi"}', event_type="message"),
    StreamFrame(data="line one\nline two"),
    StreamFrame(data='{"content":"bye"}', event_type="final_response"),
    StreamFrame(data="héllo ✓"),
    StreamFrame(data="tail"),
]


def test_whole_stream_yields_expected_frames() -> None:
    assert list(iter_frames([STREAM])) == EXPECTED


def test_any_two_chunk_split_yields_same_frames() -> None:
    for index in range(len(STREAM) + 1):
        chunks = [STREAM[:index], STREAM[index:]]
        assert list(iter_frames(chunks)) == EXPECTED, f"split at {index}"


def test_byte_at_a_time_yields_same_frames() -> None:
    chunks = [STREAM[index : index + 1] for index in range(len(STREAM))]
    assert list(iter_frames(chunks)) == EXPECTED


def test_feed_keeps_only_unconsumed_remainder() -> None:
    parser = SSEFrameParser()

    assert parser.feed(b"data: first\n\ndata: sec") == [StreamFrame(data="first")]
    assert parser.pending == len(b"data: sec")
    assert parser.feed(b"ond\n\n") == [StreamFrame(data="second")]
    assert parser.pending == 0


def test_flush_emits_remainder_and_resets() -> None:
    parser = SSEFrameParser()
    parser.feed(b"event: final_response\ndata: {}")

    assert parser.flush() == [StreamFrame(data="{}", event_type="final_response")]
    assert parser.pending == 0
    assert parser.flush() == []


def test_record_with_event_but_no_data_is_dropped() -> None:
    assert parse_record("event: tool_call") is None
    assert parse_record("event: tool_call\ndata:   ") is None


def test_unknown_fields_and_comments_are_ignored() -> None:
    frame = parse_record(": comment\nid: 42\nretry: 1000\ndata: payload")
    assert frame == StreamFrame(data="payload")


def test_empty_event_value_keeps_default_type() -> None:
    assert parse_record("event:\ndata: x") == StreamFrame(data="x", event_type="message")


def test_event_type_and_data_are_trimmed() -> None:
    assert parse_record("event:   tool_result  \ndata:   {}   ") == StreamFrame(data="{}", event_type="tool_result")


def test_strict_parser_waits_for_blank_line() -> None:
    parser = SSEFrameParser()

    assert parser.feed(b'data: {"content":"x"}\n') == []
    assert parser.feed(b"\n") == [StreamFrame(data='{"content":"x"}')]


def test_lenient_parser_accepts_single_trailing_newline() -> None:
    parser = SSEFrameParser(lenient=True)

    assert parser.feed(b'data: {"content":"x"}\n') == [StreamFrame(data='{"content":"x"}')]
    assert parser.pending == 0


def test_lenient_parser_leaves_multi_line_remainder_buffered() -> None:
    parser = SSEFrameParser(lenient=True)

    assert parser.feed(b"event: final_response\ndata: {}\n") == []
    assert parser.flush() == [StreamFrame(data="{}", event_type="final_response")]
