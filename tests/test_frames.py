import pytest

from stompchat.errors import FrameError
from stompchat.frames import Frame, FrameBuffer, encode_frame


class TestEncodeFrame:
    def test_frame_without_body(self):
        data = encode_frame(Frame("SUBSCRIBE", {"id": "sub-0", "destination": "/topic/public"}))
        assert data == "SUBSCRIBE\nid:sub-0\ndestination:/topic/public\n\n\x00"

    def test_body_gets_content_length_in_bytes(self):
        data = encode_frame(Frame("SEND", {"destination": "/app/chat.sendMessage"}, "héllo"))
        assert "content-length:6\n" in data
        assert data.endswith("\n\nhéllo\x00")

    def test_explicit_content_length_is_kept(self):
        data = encode_frame(Frame("SEND", {"destination": "/q", "content-length": "2"}, "ok"))
        assert data.count("content-length") == 1

    def test_header_values_are_escaped(self):
        data = encode_frame(Frame("SEND", {"destination": "/q", "note": "a:b\nc\\d"}))
        assert "note:a\\cb\\nc\\\\d\n" in data

    def test_connect_headers_are_verbatim(self):
        data = encode_frame(Frame("CONNECT", {"accept-version": "1.2", "login": "a:b"}))
        assert "login:a:b\n" in data


class TestFrameBuffer:
    def test_single_frame(self):
        frames = FrameBuffer().feed("CONNECTED\nversion:1.2\nheart-beat:0,0\n\n\x00")
        assert frames == [Frame("CONNECTED", {"version": "1.2", "heart-beat": "0,0"}, "")]

    def test_message_body(self):
        raw = 'MESSAGE\nsubscription:sub-0\ndestination:/topic/public\n\n{"sender":"a"}\x00'
        (frame,) = FrameBuffer().feed(raw)
        assert frame.command == "MESSAGE"
        assert frame.headers["subscription"] == "sub-0"
        assert frame.body == '{"sender":"a"}'

    def test_content_length_allows_nul_in_body(self):
        (frame,) = FrameBuffer().feed("MESSAGE\ncontent-length:3\n\na\x00b\x00")
        assert frame.body == "a\x00b"

    def test_content_length_counts_bytes(self):
        (frame,) = FrameBuffer().feed("MESSAGE\ncontent-length:6\n\nhéllo\x00".encode("utf-8"))
        assert frame.body == "héllo"

    def test_heartbeats_are_skipped(self):
        buf = FrameBuffer()
        assert buf.feed("\n") == []
        assert buf.feed("\r\n\n") == []
        assert len(buf) == 0
        frames = buf.feed("\nRECEIPT\nreceipt-id:r-1\n\n\x00\n")
        assert [f.command for f in frames] == ["RECEIPT"]

    def test_several_frames_in_one_message(self):
        raw = "RECEIPT\nreceipt-id:1\n\n\x00\nRECEIPT\nreceipt-id:2\n\n\x00"
        frames = FrameBuffer().feed(raw)
        assert [f.headers["receipt-id"] for f in frames] == ["1", "2"]

    def test_partial_frame_waits_for_rest(self):
        buf = FrameBuffer()
        assert buf.feed("MESSAGE\nsubscription:sub-0\n") == []
        assert buf.feed("\nhello") == []
        (frame,) = buf.feed(" world\x00")
        assert frame.body == "hello world"
        assert len(buf) == 0

    def test_partial_frame_with_content_length(self):
        buf = FrameBuffer()
        assert buf.feed("MESSAGE\ncontent-length:5\n\nab") == []
        (frame,) = buf.feed("cde\x00")
        assert frame.body == "abcde"

    def test_crlf_line_endings(self):
        (frame,) = FrameBuffer().feed("MESSAGE\r\nsubscription:sub-1\r\n\r\nbody\x00")
        assert frame.headers == {"subscription": "sub-1"}
        assert frame.body == "body"

    def test_header_escapes_are_decoded(self):
        (frame,) = FrameBuffer().feed("MESSAGE\nnote:a\\cb\\nc\\\\d\n\n\x00")
        assert frame.headers["note"] == "a:b\nc\\d"

    def test_first_repeated_header_wins(self):
        (frame,) = FrameBuffer().feed("MESSAGE\nfoo:1\nfoo:2\n\n\x00")
        assert frame.headers["foo"] == "1"

    def test_encoded_frame_reads_back(self):
        sent = Frame("SEND", {"destination": "/app/chat.sendMessage", "x": "a:b"}, "hi\nthere")
        (frame,) = FrameBuffer().feed(encode_frame(sent))
        assert frame.headers["destination"] == "/app/chat.sendMessage"
        assert frame.headers["x"] == "a:b"
        assert frame.body == "hi\nthere"

    def test_malformed_header_line(self):
        buf = FrameBuffer()
        with pytest.raises(FrameError):
            buf.feed("MESSAGE\nnocolon\n\n\x00")
        assert len(buf) == 0

    def test_invalid_escape(self):
        with pytest.raises(FrameError):
            FrameBuffer().feed("MESSAGE\nfoo:a\\tb\n\n\x00")

    def test_bad_content_length(self):
        with pytest.raises(FrameError):
            FrameBuffer().feed("MESSAGE\ncontent-length:abc\n\nx\x00")

    def test_body_longer_than_content_length(self):
        with pytest.raises(FrameError):
            FrameBuffer().feed("MESSAGE\ncontent-length:1\n\nxyz\x00")

    def test_invalid_utf8_body(self):
        buf = FrameBuffer()
        with pytest.raises(FrameError):
            buf.feed(b"MESSAGE\nsubscription:sub-0\n\n\xff\xfe\x00")
        assert len(buf) == 0

    def test_invalid_utf8_header(self):
        with pytest.raises(FrameError):
            FrameBuffer().feed(b"MESSAGE\nfoo:\xc3\n\n\x00")
