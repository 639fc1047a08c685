"""
Tests for line protocol encoding and payload delivery.
"""
import logging
import ssl
import unittest
from unittest import mock

import requests

from .base import DeliveryStatus, TransportFailure, DeliveryError
from .delivery import DeliveryClient, TLSPolicyAdapter, create_tls_context, TLS_CIPHERS, TOKEN_HEADER
from .line_protocol import LineProtocolEncoder, escape, format_field_value
from ..schema.models import Point, SOURCE_TAG_KEY

T_NS = 1293974055000000000
ENDPOINT = 'https://ingestion.example.com:50443/beacon/v1/ingest-metrics'


def _split_unescaped(text, separator, respect_quotes=False):
    """Split on separator characters that are neither escaped nor inside quotes."""
    parts, current, escaped, quoted = [], '', False, False
    for char in text:
        if escaped:
            current += '\\' + char
            escaped = False
        elif char == '\\':
            escaped = True
        elif respect_quotes and char == '"':
            quoted = not quoted
            current += char
        elif char == separator and not quoted:
            parts.append(current)
            current = ''
        else:
            current += char
    parts.append(current)
    return parts


def _unescape(text):
    result, escaped = '', False
    for char in text:
        if escaped:
            result += {'n': '\n', 'r': '\r'}.get(char, char)
            escaped = False
        elif char == '\\':
            escaped = True
        else:
            result += char
    return result


def _parse_value(text):
    if text.startswith('"'):
        return _unescape(text[1:-1])
    if text in ('true', 'false'):
        return text == 'true'
    if text.endswith('i'):
        return int(text[:-1])
    return float(text)


def parse_line(line):
    """Rebuild a Point from one encoded line."""
    head, fields, timestamp = _split_unescaped(line, ' ', respect_quotes=True)
    series, *tag_parts = _split_unescaped(head, ',')
    tags = {}
    for part in tag_parts:
        key, value = _split_unescaped(part, '=')
        tags[_unescape(key)] = _unescape(value)
    values = {}
    for part in _split_unescaped(fields, ',', respect_quotes=True):
        key, value = _split_unescaped(part, '=', respect_quotes=True)
        values[_unescape(key)] = _parse_value(value)
    return Point(timestamp=int(timestamp), series=_unescape(series), tags=tags, values=values)


class TestEscaping(unittest.TestCase):
    """Test cases for the shared escaping function."""

    def test_measurement(self):
        self.assertEqual(escape('cpu load,total=1', 'measurement'), 'cpu\\ load\\,total=1')

    def test_tag_key_and_value(self):
        self.assertEqual(escape('a b', 'tag_key'), 'a\\ b')
        self.assertEqual(escape('c=d,e', 'tag_value'), 'c\\=d\\,e')

    def test_field_key_escapes_quotes(self):
        self.assertEqual(escape('f"k =,', 'field_key'), 'f\\"k\\ \\=\\,')

    def test_field_value_escapes_backslash_first(self):
        self.assertEqual(escape('say "hi" \\', 'field_value'), 'say \\"hi\\" \\\\')

    def test_line_breaks_escaped_for_every_kind(self):
        for kind in ('measurement', 'tag_key', 'tag_value', 'field_key', 'field_value'):
            escaped = escape('a\nb\rc', kind)
            self.assertNotIn('\n', escaped)
            self.assertNotIn('\r', escaped)
            self.assertEqual(escaped, 'a\\nb\\rc')

    def test_field_value_types(self):
        self.assertEqual(format_field_value(1), '1i')
        self.assertEqual(format_field_value(-7), '-7i')
        self.assertEqual(format_field_value(1.5), '1.5')
        self.assertEqual(format_field_value(2.0), '2.0')
        self.assertEqual(format_field_value(True), 'true')
        self.assertEqual(format_field_value(False), 'false')
        self.assertEqual(format_field_value('a b'), '"a b"')

    def test_float_without_exponent(self):
        self.assertEqual(format_field_value(1e20), '100000000000000000000.0')
        self.assertEqual(format_field_value(1e-07), '0.0000001')


class TestLineProtocolEncoder(unittest.TestCase):
    """Test cases for LineProtocolEncoder."""

    def setUp(self):
        self.encoder = LineProtocolEncoder()

    def _point(self, values, tags=None, series='test', timestamp=T_NS):
        point_tags = dict(tags or {})
        point_tags[SOURCE_TAG_KEY] = 'test-source-name'
        return Point(timestamp=timestamp, series=series, tags=point_tags, values=values)

    def test_single_point(self):
        line = self.encoder.encode([self._point({'a': 1})])
        self.assertEqual(line, f"test,beacon-fluent-source=test-source-name a=1i {T_NS}")

    def test_multiple_points_no_trailing_newline(self):
        payload = self.encoder.encode([self._point({'a': 1}), self._point({'a': 2})])
        self.assertEqual(
            payload,
            "test,beacon-fluent-source=test-source-name a=1i 1293974055000000000\n"
            "test,beacon-fluent-source=test-source-name a=2i 1293974055000000000"
        )

    def test_tags_and_fields_sorted(self):
        point = self._point({'z': 1.5, 'a': 'x', 'm': True}, tags={'zone': 'eu', 'app': 'web', '_seq': 0})
        self.assertEqual(
            self.encoder.encode_point(point),
            f'test,_seq=0,app=web,beacon-fluent-source=test-source-name,zone=eu a="x",m=true,z=1.5 {T_NS}'
        )

    def test_empty_tag_value_omitted(self):
        point = self._point({'a': 1}, tags={'empty': ''})
        self.assertEqual(self.encoder.encode_point(point), f"test,beacon-fluent-source=test-source-name a=1i {T_NS}")

    def test_trailing_backslash_keeps_separator(self):
        point = Point(timestamp=5, series='a\\', tags={}, values={'f': 1})
        self.assertEqual(self.encoder.encode_point(point), 'a\\  f=1i 5')

    def test_special_characters(self):
        point = self._point({'msg': 'he said "ok", then left', 'the count': 3},
                            tags={'host name': 'web 1,eu=west'}, series='my measurement')
        self.assertEqual(
            self.encoder.encode_point(point),
            'my\\ measurement,beacon-fluent-source=test-source-name,host\\ name=web\\ 1\\,eu\\=west '
            f'msg="he said \\"ok\\", then left",the\\ count=3i {T_NS}'
        )

    def test_encode_empty(self):
        self.assertEqual(self.encoder.encode([]), '')

    def test_round_trip(self):
        points = [
            self._point({'a': 1}),
            self._point({'ratio': 0.25, 'ok': False}, tags={'host name': 'db,1', 'k=v': 'x y'}),
            self._point({'msg': 'quote " and, comma = sign'}, tags={'_seq': 2}, series='app logs', timestamp=T_NS + 1),
            self._point({'msg': 'first line\nsecond line\r\n', 'a': 2}, tags={'host': 'web\n1'}),
        ]
        payload = self.encoder.encode(points)
        lines = payload.split('\n')
        self.assertEqual(len(lines), len(points))
        for point, line in zip(points, lines):
            expected = Point(
                timestamp=point.timestamp,
                series=point.series,
                tags={key: str(value) for key, value in point.tags.items()},
                values=point.values,
            )
            self.assertEqual(parse_line(line), expected)


class TestTLSPolicy(unittest.TestCase):
    """Test cases for the TLS context and adapter."""

    def test_context_pinned_to_tls12(self):
        context = create_tls_context()
        self.assertEqual(context.minimum_version, ssl.TLSVersion.TLSv1_2)
        self.assertEqual(context.maximum_version, ssl.TLSVersion.TLSv1_2)
        self.assertEqual(context.verify_mode, ssl.CERT_REQUIRED)
        self.assertTrue(context.check_hostname)

    def test_cipher_allow_list(self):
        context = create_tls_context()
        enabled = {c['name'] for c in context.get_ciphers() if c.get('protocol') == 'TLSv1.2'}
        self.assertTrue(enabled)
        self.assertTrue(enabled <= set(TLS_CIPHERS))

    def test_adapter_passes_context_to_pool(self):
        adapter = TLSPolicyAdapter()
        self.assertIs(adapter.poolmanager.connection_pool_kw['ssl_context'], adapter.ssl_context)

    def test_client_mounts_adapter(self):
        client = DeliveryClient({'endpoint': ENDPOINT, 'token': 'test-token'})
        try:
            self.assertIsInstance(client.session.get_adapter(ENDPOINT), TLSPolicyAdapter)
            self.assertIs(client.session.verify, True)
        finally:
            client.close()

    def test_missing_ca_file_falls_back(self):
        with self.assertLogs('beacon_connector.writer.delivery', level='WARNING'):
            client = DeliveryClient({'endpoint': ENDPOINT, 'token': 't', 'tls_ca': '/nonexistent/ca.pem'})
        self.assertIs(client.session.verify, True)
        client.close()


class TestDeliveryClient(unittest.TestCase):
    """Test cases for DeliveryClient with a stubbed session."""

    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.client = DeliveryClient(
            {'endpoint': ENDPOINT, 'token': 'test-token', 'request_timeout': 10},
            session=self.session,
        )

    def _response(self, status_code, text='', reason='OK'):
        return mock.Mock(status_code=status_code, text=text, reason=reason)

    def test_request_shape(self):
        self.session.post.return_value = self._response(204, reason='No Content')
        outcome = self.client.deliver('test a=1i 1')

        self.session.post.assert_called_once_with(
            ENDPOINT,
            data=b'test a=1i 1',
            headers={TOKEN_HEADER: 'test-token', 'Content-Type': 'text/plain'},
            timeout=10,
        )
        self.assertEqual(outcome.status, DeliveryStatus.DELIVERED)
        self.assertTrue(outcome.delivered)
        self.assertEqual(outcome.status_code, 204)

    def test_lone_surrogate_replaced(self):
        self.session.post.return_value = self._response(204)
        outcome = self.client.deliver('test s="\ud800" 1')
        self.assertTrue(outcome.delivered)
        self.assertEqual(self.session.post.call_args.kwargs['data'], b'test s="?" 1')

    def test_caller_timeout_wins(self):
        self.session.post.return_value = self._response(200)
        self.client.deliver('test a=1i 1', timeout=2.5)
        self.assertEqual(self.session.post.call_args.kwargs['timeout'], 2.5)

    def test_rejected(self):
        self.session.post.return_value = self._response(401, text='invalid token', reason='Unauthorized')
        with self.assertLogs('beacon_connector.writer.delivery', level='WARNING') as logs:
            outcome = self.client.deliver('test a=1i 1')

        self.assertEqual(outcome.status, DeliveryStatus.REJECTED)
        self.assertEqual(outcome.status_code, 401)
        self.assertEqual(outcome.body, 'invalid token')
        self.assertFalse(outcome.delivered)
        self.assertIn(f"failed to POST {ENDPOINT} (401 Unauthorized invalid token)", logs.output[0])

    def test_transport_failure_propagates(self):
        error = requests.ConnectionError('connection refused')
        self.session.post.side_effect = error
        with self.assertLogs('beacon_connector.writer.delivery', level='WARNING'):
            with self.assertRaises(TransportFailure) as ctx:
                self.client.deliver('test a=1i 1')

        self.assertIs(ctx.exception.__cause__, error)
        self.assertIsInstance(ctx.exception, DeliveryError)
        self.assertEqual(ctx.exception.outcome.status, DeliveryStatus.TRANSPORT_FAILURE)
        self.assertEqual(self.session.post.call_count, 1)

    def test_timeout_is_transport_failure(self):
        self.session.post.side_effect = requests.Timeout('read timed out')
        with self.assertLogs('beacon_connector.writer.delivery', level='WARNING'):
            with self.assertRaises(TransportFailure):
                self.client.deliver('test a=1i 1')

    def test_close(self):
        self.client.close()
        self.session.close.assert_called_once_with()


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
