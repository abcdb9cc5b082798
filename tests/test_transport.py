"""Unit tests for the h2 transport collaborator."""

from unittest.mock import patch

import h2.events
import pytest
from h2.settings import SettingCodes

from http2_antifingerprint.config import RuntimeSettings
from http2_antifingerprint.settings_generator import Http2Settings
from http2_antifingerprint.transport import Authority, H2Response, H2Stream, H2Transport, fill_pseudo_headers

SETTINGS = Http2Settings(
    header_table_size=1024,
    enable_push=False,
    initial_window_size=1000,
    max_frame_size=32768,
    max_concurrent_streams=50,
    max_header_list_size=4000,
    enable_connect_protocol=True,
)

AUTHORITY = Authority("https", "example.com", 443)


# =============================================================================
# AUTHORITY TESTS
# =============================================================================
class TestAuthority:
    """Tests for authority parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("https://example.com", Authority("https", "example.com", 443)),
            ("http://example.com", Authority("http", "example.com", 80)),
            ("https://example.com:8443", Authority("https", "example.com", 8443)),
            ("http://127.0.0.1:8080/path", Authority("http", "127.0.0.1", 8080)),
            ("example.com", Authority("https", "example.com", 443)),
        ],
    )
    def test_parse(self, raw: str, expected: Authority) -> None:
        """Test scheme-based default ports and explicit ports."""
        assert Authority.parse(raw) == expected

    def test_custom_default_ports(self) -> None:
        """Test default ports come from runtime settings."""
        runtime = RuntimeSettings(_env_file=None, H2AF_DEFAULT_HTTPS_PORT=9443)
        assert Authority.parse("https://example.com", runtime).port == 9443

    def test_no_host(self) -> None:
        """Test an authority without host is rejected."""
        with pytest.raises(ValueError):
            Authority.parse("https://")

    def test_properties(self) -> None:
        """Test host and secure helpers."""
        assert AUTHORITY.host == "example.com:443"
        assert AUTHORITY.secure is True
        assert Authority("http", "a", 80).secure is False


# =============================================================================
# PSEUDO-HEADER DEFAULT TESTS
# =============================================================================
class TestFillPseudoHeaders:
    """Tests for completing the mandatory pseudo-headers."""

    def test_complete_headers_unchanged(self) -> None:
        """Test a full pseudo group keeps its order and values."""
        headers = {":path": "/a", ":method": "POST", ":authority": "h", ":scheme": "http", "accept": "*/*"}
        assert list(fill_pseudo_headers(headers, AUTHORITY).items()) == list(headers.items())

    def test_missing_follow_given_pseudo_headers(self) -> None:
        """Test defaults sit between the given pseudo-headers and the regular ones."""
        filled = fill_pseudo_headers({":method": "GET", ":path": "/", "user-agent": "ua"}, AUTHORITY)

        assert list(filled.items()) == [
            (":method", "GET"),
            (":path", "/"),
            (":scheme", "https"),
            (":authority", "example.com"),
            ("user-agent", "ua"),
        ]

    def test_regular_only(self) -> None:
        """Test all four defaults lead when no pseudo-header is given."""
        filled = fill_pseudo_headers({"accept": "*/*"}, Authority("http", "example.org", 8080))

        assert list(filled) == [":method", ":scheme", ":authority", ":path", "accept"]
        assert filled[":scheme"] == "http"
        assert filled[":authority"] == "example.org"

    def test_input_not_mutated(self) -> None:
        """Test the caller's mapping is left as given."""
        headers = {":path": "/"}
        fill_pseudo_headers(headers, AUTHORITY)
        assert headers == {":path": "/"}


# =============================================================================
# SESSION TESTS
# =============================================================================
class TestH2Transport:
    """Tests for the h2 session wrapper."""

    @pytest.mark.asyncio
    async def test_start_sends_preface_with_settings(self, stream_pair_factory, written) -> None:
        """Test the preface announces the generated SETTINGS."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)

        await transport.start(SETTINGS)

        assert written(writer).startswith(b"PRI * HTTP/2.0\r\n\r\nSM\r\n\r\n")
        assert transport.local_settings[SettingCodes.INITIAL_WINDOW_SIZE] == 1000
        assert transport.local_settings[SettingCodes.MAX_FRAME_SIZE] == 32768
        assert transport.local_settings[SettingCodes.ENABLE_PUSH] == 0
        assert transport.local_settings[SettingCodes.ENABLE_CONNECT_PROTOCOL] == 1
        await transport.close()

    @pytest.mark.asyncio
    async def test_send_request_keeps_order(self, stream_pair_factory) -> None:
        """Test HEADERS go out in the given order with missing pseudo-headers after the given ones."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)

        with patch.object(transport._conn, "send_headers") as mock_send:
            with patch.object(transport._conn, "increment_flow_control_window"):
                transport.send_request({":path": "/x", "user-agent": "ua", "accept": ["a", "b"]})

        header_list = mock_send.call_args.args[1]
        assert header_list == [
            (":path", "/x"),
            (":method", "GET"),
            (":scheme", "https"),
            (":authority", "example.com"),
            ("user-agent", "ua"),
            ("accept", "a"),
            ("accept", "b"),
        ]
        await transport.close()

    @pytest.mark.asyncio
    async def test_wire_order_matches_given_order(self, stream_pair_factory, wire_headers) -> None:
        """Test a server decodes HEADERS in exactly the order they were given."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)

        transport.send_request(
            {
                ":authority": "example.com",
                ":path": "/",
                ":scheme": "https",
                ":method": "GET",
                "accept": "*/*",
                "user-agent": "ua",
            }
        )

        (headers,) = wire_headers(writer)
        assert [name for name, _ in headers] == [
            ":authority",
            ":path",
            ":scheme",
            ":method",
            "accept",
            "user-agent",
        ]
        await transport.close()

    @pytest.mark.asyncio
    async def test_send_request_returns_stream(self, stream_pair_factory) -> None:
        """Test a real HEADERS frame is produced and a stream returned."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)
        writes_before = writer.write.call_count

        stream = transport.send_request({":method": "GET", ":path": "/", "user-agent": "ua"})

        assert isinstance(stream, H2Stream)
        assert stream.stream_id == 1
        assert writer.write.call_count > writes_before
        await transport.close()

    @pytest.mark.asyncio
    async def test_update_settings(self, stream_pair_factory) -> None:
        """Test a SETTINGS frame is written for new values."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)
        writes_before = writer.write.call_count

        with patch.object(transport._conn, "update_settings", wraps=transport._conn.update_settings) as mock_update:
            transport.update_settings(SETTINGS)

        mock_update.assert_called_once_with(SETTINGS.as_h2_settings())
        assert writer.write.call_count > writes_before
        await transport.close()

    @pytest.mark.asyncio
    async def test_config_overrides(self, stream_pair_factory) -> None:
        """Test pass-through keys reach H2Configuration."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY, config_overrides={"validate_inbound_headers": False})

        assert transport._conn.config.validate_inbound_headers is False
        assert transport._conn.config.client_side is True

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, stream_pair_factory) -> None:
        """Test closing twice closes the socket once."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)

        await transport.close()
        await transport.close()

        assert transport.is_closed is True
        writer.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_request_after_close_fails(self, stream_pair_factory) -> None:
        """Test a closed session refuses new requests."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)
        await transport.close()

        with pytest.raises(ConnectionError):
            transport.send_request({":path": "/"})


# =============================================================================
# STREAM EVENT TESTS
# =============================================================================
class TestStreamEvents:
    """Tests for dispatching h2 events to streams."""

    @pytest.mark.asyncio
    async def test_response_assembled(self, stream_pair_factory) -> None:
        """Test headers, data and end-of-stream produce a response."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)
        stream = transport.send_request({":path": "/"})

        headers = h2.events.ResponseReceived()
        headers.stream_id = stream.stream_id
        headers.headers = [(":status", "200"), ("content-type", "text/plain")]
        stream_ended = h2.events.StreamEnded()
        stream_ended.stream_id = stream.stream_id

        transport._handle_event(headers)
        stream._on_data(b"hello")
        transport._handle_event(stream_ended)

        response = await stream.response()
        assert response == H2Response(status=200, headers=[("content-type", "text/plain")], body=b"hello")
        assert response.header("content-type") == "text/plain"
        await transport.close()

    @pytest.mark.asyncio
    async def test_reset_fails_stream(self, stream_pair_factory) -> None:
        """Test RST_STREAM surfaces as an error on the stream."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)
        stream = transport.send_request({":path": "/"})

        reset = h2.events.StreamReset()
        reset.stream_id = stream.stream_id
        transport._handle_event(reset)

        with pytest.raises(ConnectionResetError):
            await stream.response()
        await transport.close()

    @pytest.mark.asyncio
    async def test_peer_close_fails_pending(self, stream_pair_factory) -> None:
        """Test EOF from the peer fails open streams."""
        reader, writer = stream_pair_factory()
        transport = H2Transport(reader, writer, AUTHORITY)
        await transport.start(SETTINGS)
        stream = transport.send_request({":path": "/"})

        reader.feed_eof()

        with pytest.raises(ConnectionResetError):
            await stream.response()
        await transport.close()
