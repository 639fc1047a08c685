"""
Tests for connector configuration, buffering and the batch write path.
"""
import json
import logging
import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

from .buffer import Chunk, pack_entry, unpack_entries
from .config import BeaconConfig, ConfigError, DEFAULT_ENDPOINT, parse_tag_keys
from .logging_config import LoggingConfigurator, LOG_FORMAT, resolve_level
from .output import BeaconOutput
from ..schema.models import EventTime, SequenceState, SOURCE_TAG_KEY
from ..writer.base import Writer, DeliveryOutcome, DeliveryStatus, TransportFailure

TIME = EventTime(1293974055)  # 2011-01-02 13:14:15 UTC
T_NS = 1293974055000000000
SOURCE = {SOURCE_TAG_KEY: 'test-source-name'}


class RecordingWriter(Writer):
    """Writer that keeps payloads instead of sending them."""

    def __init__(self, outcome=None, error=None):
        self.payloads = []
        self.closed = False
        self.outcome = outcome or DeliveryOutcome(status=DeliveryStatus.DELIVERED, status_code=204)
        self.error = error

    def deliver(self, payload, timeout=None):
        self.payloads.append(payload)
        if self.error:
            raise self.error
        return self.outcome

    def close(self):
        self.closed = True


def make_config(**overrides):
    settings = {'source_name': 'test-source-name', 'token': 'test-token'}
    settings.update(overrides)
    return BeaconConfig(**settings)


class TestBeaconConfig(unittest.TestCase):
    """Test cases for BeaconConfig."""

    def test_defaults(self):
        config = make_config()
        self.assertEqual(config.endpoint, DEFAULT_ENDPOINT)
        self.assertEqual(config.time_key, 'time')
        self.assertFalse(config.auto_tags)
        self.assertEqual(config.tag_keys, [])
        self.assertIsNone(config.sequence_tag)
        self.assertFalse(config.cast_number_to_float)
        self.assertEqual(config.chunk_keys, ['tag'])

    def test_missing_token(self):
        with self.assertRaises(ConfigError):
            BeaconConfig(source_name='test-source-name')

    def test_missing_source_name(self):
        with self.assertRaises(ConfigError):
            BeaconConfig(token='test-token')

    def test_chunk_keys_require_tag(self):
        with self.assertRaises(ConfigError):
            make_config(chunk_keys=['arbitrary_key'])

    def test_endpoint_must_be_https(self):
        with self.assertRaises(ConfigError):
            make_config(endpoint='http://localhost/beacon/v1/ingest-metrics')
        config = make_config(endpoint='https://localhost/beacon/v1/ingest-metrics')
        self.assertEqual(config.endpoint, 'https://localhost/beacon/v1/ingest-metrics')

    def test_request_timeout_positive(self):
        with self.assertRaises(ConfigError):
            make_config(request_timeout=0)

    def test_invalid_log_level(self):
        with self.assertRaises(ConfigError):
            make_config(log_level='LOUD')

    def test_config_error_is_value_error(self):
        self.assertTrue(issubclass(ConfigError, ValueError))

    def test_parse_tag_keys(self):
        self.assertEqual(parse_tag_keys('["b"]'), ['b'])
        self.assertEqual(parse_tag_keys('a, b'), ['a', 'b'])
        self.assertEqual(parse_tag_keys(['a']), ['a'])
        self.assertEqual(parse_tag_keys(''), [])
        with self.assertRaises(ConfigError):
            parse_tag_keys('[b')
        with self.assertRaises(ConfigError):
            parse_tag_keys(5)

    def test_from_dict_ignores_unknown(self):
        with self.assertLogs('beacon_connector.core.config', level='WARNING'):
            config = BeaconConfig.from_dict({'source_name': 's', 'token': 't', 'bogus': 1})
        self.assertEqual(config.source_name, 's')

    def test_to_dict_redacts_token(self):
        data = make_config(token='a-0123456789#fake-token').to_dict()
        self.assertEqual(data['token'], '[REDACTED]')
        self.assertNotIn('a-0123456789#fake-token', json.dumps(data))


class TestConfigFile(unittest.TestCase):
    """Test cases for loading configuration files."""

    def setUp(self):
        self.temp_dir = TemporaryDirectory()
        self.temp_path = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_yaml(self):
        path = self.temp_path / 'beacon.yaml'
        path.write_text(
            "source_name: test-source-name\n"
            "token: a-0123456789#fake-token\n"
            "endpoint: https://localhost/beacon/v1/ingest-metrics\n"
            "tag_keys: [host, region]\n"
            "sequence_tag: _seq\n",
            encoding='utf-8'
        )
        with mock.patch.dict(os.environ, {}, clear=True):
            config = BeaconConfig.from_file(str(path))
        self.assertEqual(config.token, 'a-0123456789#fake-token')
        self.assertEqual(config.endpoint, 'https://localhost/beacon/v1/ingest-metrics')
        self.assertEqual(config.tag_keys, ['host', 'region'])
        self.assertEqual(config.sequence_tag, '_seq')

    def test_json_with_env_override(self):
        path = self.temp_path / 'beacon.json'
        path.write_text(json.dumps({'source_name': 'from-file', 'token': 'file-token'}), encoding='utf-8')
        with mock.patch.dict(os.environ, {'BEACON_TOKEN': 'env-token'}, clear=True):
            config = BeaconConfig.from_file(str(path))
        self.assertEqual(config.token, 'env-token')
        self.assertEqual(config.source_name, 'from-file')

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            BeaconConfig.from_file(str(self.temp_path / 'missing.yaml'))

    def test_unsupported_format(self):
        path = self.temp_path / 'beacon.ini'
        path.write_text('token=x', encoding='utf-8')
        with self.assertRaises(ConfigError):
            BeaconConfig.from_file(str(path))

    def test_missing_required_in_file(self):
        path = self.temp_path / 'beacon.yml'
        path.write_text('source_name: only-source\n', encoding='utf-8')
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigError):
                BeaconConfig.from_file(str(path))


class TestLoggingConfigurator(unittest.TestCase):
    """Test cases for LoggingConfigurator."""

    def setUp(self):
        self.configurator = LoggingConfigurator('beacon_connector.logtest')

    def tearDown(self):
        self.configurator.release()

    def test_level_applied_and_restored(self):
        logger = self.configurator.logger
        logger.setLevel(logging.WARNING)
        self.configurator.apply('debug')
        self.assertEqual(logger.level, logging.DEBUG)
        self.configurator.release()
        self.assertEqual(logger.level, logging.WARNING)
        logger.setLevel(logging.NOTSET)

    def test_file_handler_attached_and_released(self):
        with TemporaryDirectory() as temp_dir:
            log_file = os.path.join(temp_dir, 'logs', 'beacon.log')
            self.configurator.apply('INFO', log_file)
            self.assertTrue(os.path.isdir(os.path.dirname(log_file)))

            handler = self.configurator.handler
            self.assertIn(handler, self.configurator.logger.handlers)
            self.assertEqual(handler.formatter._fmt, LOG_FORMAT)

            logging.getLogger('beacon_connector.logtest.child').info("hello from child")
            self.configurator.release()
            self.assertNotIn(handler, self.configurator.logger.handlers)
            self.assertIn("INFO - hello from child", Path(log_file).read_text(encoding='utf-8'))

    def test_nothing_configured_is_noop(self):
        self.configurator.apply()
        self.assertIsNone(self.configurator.handler)
        self.assertEqual(self.configurator.logger.level, logging.NOTSET)

    def test_resolve_level(self):
        self.assertEqual(resolve_level('warning'), logging.WARNING)
        with self.assertRaises(ValueError):
            resolve_level('LOUD')


class TestChunk(unittest.TestCase):
    """Test cases for the buffered intermediate format."""

    def test_pack_and_iterate_in_order(self):
        chunk = Chunk(tag='test')
        chunk.append(pack_entry(T_NS, {'a': 1}))
        chunk.append(b'')
        chunk.append(pack_entry(T_NS + 1, {'a': 2.0, 'b': 'x'}))

        entries = list(chunk.each())
        self.assertEqual(entries, [(T_NS, {'a': 1}), (T_NS + 1, {'a': 2.0, 'b': 'x'})])
        self.assertIsInstance(entries[1][1]['a'], float)
        self.assertEqual(len(chunk), 2)

    def test_unpack_skips_blank_lines(self):
        data = pack_entry(1, {'a': 1}) + b'\n'
        self.assertEqual(list(unpack_entries(data)), [(1, {'a': 1})])


class TestBeaconOutput(unittest.TestCase):
    """Test cases for the connector batch pipeline."""

    def _output(self, **overrides):
        self.writer = RecordingWriter()
        return BeaconOutput(make_config(**overrides), writer=self.writer)

    def _chunk(self, output, tag, events):
        chunk = Chunk(tag=tag)
        for time, record in events:
            chunk.append(output.format(tag, time, record))
        return chunk

    def _points(self, output, tag, events):
        chunk = self._chunk(output, tag, events)
        return [point.to_dict() for point in output.process(chunk.tag, chunk.each())]

    def test_default_writer_is_delivery_client(self):
        from ..writer.delivery import DeliveryClient
        output = BeaconOutput(make_config())
        try:
            self.assertIsInstance(output.writer, DeliveryClient)
        finally:
            output.shutdown()

    def test_format(self):
        output = self._output()
        self.assertEqual(output.format('test', TIME, {'a': 1, 'b': None}), pack_entry(T_NS, {'a': 1}))
        self.assertEqual(output.format('test', TIME, {'a': 2}), pack_entry(T_NS, {'a': 2}))

    def test_format_keeps_subsecond_precision(self):
        output = self._output()
        formatted = output.format('test', EventTime(1293974055, 42), {'a': 1})
        self.assertEqual(list(unpack_entries(formatted)), [(T_NS + 42, {'a': 1})])

    def test_format_empty_record(self):
        output = self._output()
        with self.assertLogs('beacon_connector.core.output', level='WARNING'):
            self.assertEqual(output.format('test', TIME, {'a': None, 'b': ''}), b'')
        with self.assertLogs('beacon_connector.core.output', level='WARNING'):
            self.assertEqual(output.format('test', TIME, {}), b'')

    def test_write_scenario(self):
        output = self._output()
        chunk = self._chunk(output, 'test', [(TIME, {'a': 1, 'b': None})])
        outcome = output.write(chunk)

        self.assertTrue(outcome.delivered)
        self.assertEqual(self.writer.payloads, [f"test,beacon-fluent-source=test-source-name a=1i {T_NS}"])

    def test_write_with_measurement(self):
        output = self._output(measurement='test')
        chunk = self._chunk(output, 'input.influxdb', [(TIME, {'a': 1}), (TIME, {'a': 2})])
        output.write(chunk)

        self.assertEqual(self.writer.payloads, [
            "test,beacon-fluent-source=test-source-name a=1i 1293974055000000000\n"
            "test,beacon-fluent-source=test-source-name a=2i 1293974055000000000"
        ])

    def test_series_defaults_to_tag(self):
        output = self._output()
        points = self._points(output, 'input.influxdb', [(TIME, {'a': 1}), (TIME, {'a': 2})])
        self.assertEqual(points, [
            {'timestamp': T_NS, 'series': 'input.influxdb', 'tags': SOURCE, 'values': {'a': 1}},
            {'timestamp': T_NS, 'series': 'input.influxdb', 'tags': SOURCE, 'values': {'a': 2}},
        ])

    def test_tag_keys(self):
        output = self._output(tag_keys=['b'])
        points = self._points(output, 'input.influxdb', [
            (TIME, {'a': 1, 'b': ''}),
            (TIME, {'a': 2, 'b': 1}),
            (TIME, {'a': 3, 'b': ' '}),
        ])
        self.assertEqual([(p['values'], p['tags']) for p in points], [
            ({'a': 1}, SOURCE),
            ({'a': 2}, {'b': '1', **SOURCE}),
            ({'a': 3}, SOURCE),
        ])

    def test_auto_tagging(self):
        output = self._output(auto_tags=True)
        points = self._points(output, 'input.influxdb', [
            (TIME, {'a': 1, 'b': '1'}),
            (TIME, {'a': 2, 'b': 1}),
            (TIME, {'a': 3, 'b': ' '}),
        ])
        self.assertEqual([(p['values'], p['tags']) for p in points], [
            ({'a': 1}, {'b': '1', **SOURCE}),
            ({'a': 2, 'b': 1}, SOURCE),
            ({'a': 3}, SOURCE),
        ])

    def test_ignore_record_without_values(self):
        output = self._output(tag_keys=['b'])
        with self.assertLogs('beacon_connector.core.output', level='WARNING'):
            points = self._points(output, 'input.influxdb', [(TIME, {'b': '3'}), (TIME, {'a': 2, 'b': 1})])
        self.assertEqual(points, [
            {'timestamp': T_NS, 'series': 'input.influxdb', 'tags': {'b': '1', **SOURCE}, 'values': {'a': 2}},
        ])

    def test_composite_fields_never_encoded(self):
        output = self._output()
        chunk = self._chunk(output, 'test', [(TIME, {'a': 1, 'nested': {'x': 1}, 'items': [1, 2]})])
        with self.assertLogs('beacon_connector.transform.classifier', level='WARNING'):
            output.write(chunk)
        self.assertEqual(self.writer.payloads, [f"test,beacon-fluent-source=test-source-name a=1i {T_NS}"])

    def test_line_breaks_stay_inside_one_line(self):
        output = self._output(auto_tags=True)
        chunk = self._chunk(output, 'test', [(TIME, {'a': 1, 'host': 'web\n1'}), (TIME, {'a': 2, 'msg_count': 3})])
        output.write(chunk)

        lines = self.writer.payloads[0].split('\n')
        self.assertEqual(lines, [
            f"test,beacon-fluent-source=test-source-name,host=web\\n1 a=1i {T_NS}",
            f"test,beacon-fluent-source=test-source-name a=2i,msg_count=3i {T_NS}",
        ])

    def test_non_finite_fields_never_encoded(self):
        output = self._output()
        chunk = self._chunk(output, 'test', [(TIME, {'a': 1, 'x': float('nan'), 'y': float('-inf')})])
        with self.assertLogs('beacon_connector.transform.classifier', level='WARNING'):
            output.write(chunk)
        self.assertEqual(self.writer.payloads, [f"test,beacon-fluent-source=test-source-name a=1i {T_NS}"])

    def test_source_tag_not_overridable(self):
        output = self._output(auto_tags=True)
        points = self._points(output, 'test', [(TIME, {'a': 1, SOURCE_TAG_KEY: 'spoofed'})])
        self.assertEqual(points[0]['tags'], SOURCE)

    def test_sequence_tag(self):
        output = self._output(sequence_tag='_seq')
        next_time = EventTime(TIME.sec + 1)
        points = self._points(output, 'input.influxdb', [
            (TIME, {'a': 1}),
            (TIME, {'a': 2}),
            (next_time, {'a': 1}),
            (next_time, {'a': 2}),
        ])
        self.assertEqual([(p['timestamp'], p['tags']['_seq']) for p in points], [
            (T_NS, 0), (T_NS, 1), (T_NS + 10 ** 9, 0), (T_NS + 10 ** 9, 1),
        ])

    def test_sequence_continues_across_batches(self):
        output = self._output(sequence_tag='_seq')
        self._points(output, 'test', [(TIME, {'a': 1})])
        points = self._points(output, 'test', [(TIME, {'a': 2})])
        self.assertEqual(points[0]['tags']['_seq'], 1)
        self.assertEqual(output.sequence_state, SequenceState(last_timestamp=T_NS, counter=1))

    def test_dropped_record_still_advances_sequence(self):
        output = self._output(sequence_tag='_seq', tag_keys=['b'])
        with self.assertLogs('beacon_connector.core.output', level='WARNING'):
            points = self._points(output, 'test', [(TIME, {'b': 'only-tag'}), (TIME, {'a': 1})])
        self.assertEqual(points[0]['tags']['_seq'], 1)

    def test_sequence_tag_in_payload(self):
        output = self._output(sequence_tag='_seq')
        output.write(self._chunk(output, 'test', [(TIME, {'a': 1}), (TIME, {'a': 2})]))
        self.assertEqual(self.writer.payloads, [
            f"test,_seq=0,beacon-fluent-source=test-source-name a=1i {T_NS}\n"
            f"test,_seq=1,beacon-fluent-source=test-source-name a=2i {T_NS}"
        ])

    def test_cast_number(self):
        output = self._output(cast_number_to_float=True)
        chunk = self._chunk(output, 'input.influxdb', [(TIME, {'a': 1})])
        points = [p.to_dict() for p in output.process(chunk.tag, chunk.each())]
        self.assertEqual(points[0]['values'], {'a': 1.0})
        self.assertIsInstance(points[0]['values']['a'], float)

        output.write(chunk)
        self.assertEqual(self.writer.payloads, [f"input.influxdb,beacon-fluent-source=test-source-name a=1.0 {T_NS}"])

    def test_time_key(self):
        output = self._output(time_key='b')
        points = self._points(output, 'input.influxdb', [
            (EventTime(1577970855), {'a': 1, 'b': 1293974055000000000}),
        ])
        self.assertEqual(points, [
            {'timestamp': 1293974055000000000, 'series': 'input.influxdb', 'tags': SOURCE, 'values': {'a': 1}},
        ])

    def test_empty_chunk_not_delivered(self):
        output = self._output(tag_keys=['b'])
        with self.assertLogs('beacon_connector.core.output', level='WARNING'):
            outcome = output.write(self._chunk(output, 'test', [(TIME, {'b': 'x'})]))
        self.assertIsNone(outcome)
        self.assertEqual(self.writer.payloads, [])

    def test_rejected_outcome_returned(self):
        output = self._output()
        rejected = DeliveryOutcome(status=DeliveryStatus.REJECTED, status_code=400, body='bad')
        output.writer = RecordingWriter(outcome=rejected)
        self.assertIs(output.write(self._chunk(output, 'test', [(TIME, {'a': 1})])), rejected)

    def test_transport_failure_propagates(self):
        output = self._output()
        output.writer = RecordingWriter(error=TransportFailure('refused'))
        with self.assertRaises(TransportFailure):
            output.write(self._chunk(output, 'test', [(TIME, {'a': 1})]))

    def test_instances_have_independent_sequences(self):
        first = self._output(sequence_tag='_seq')
        second = self._output(sequence_tag='_seq')
        self._points(first, 'test', [(TIME, {'a': 1}), (TIME, {'a': 2})])
        points = self._points(second, 'test', [(TIME, {'a': 1})])
        self.assertEqual(points[0]['tags']['_seq'], 0)

    def test_start_and_shutdown(self):
        output = self._output()
        with self.assertLogs('beacon_connector.core.output', level='INFO') as logs:
            output.start()
        self.assertIn('starting F5 Beacon connector...', logs.output[0])
        self.assertNotIn('test-token', ''.join(logs.output))
        output.shutdown()
        self.assertTrue(self.writer.closed)

    def test_log_settings_applied_and_released(self):
        with TemporaryDirectory() as temp_dir:
            log_file = os.path.join(temp_dir, 'beacon.log')
            output = self._output(log_level='INFO', log_file=log_file)
            package_logger = logging.getLogger('beacon_connector')
            previous_level = package_logger.level

            output.start()
            handler = output.logging.handler
            self.assertIn(handler, package_logger.handlers)
            self.assertEqual(package_logger.level, logging.INFO)
            output.shutdown()

            self.assertNotIn(handler, package_logger.handlers)
            self.assertEqual(package_logger.level, previous_level)
            text = Path(log_file).read_text(encoding='utf-8')
            self.assertIn('starting F5 Beacon connector...', text)
            self.assertIn('F5 Beacon connector stopped', text)
            self.assertNotIn('test-token', text)


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
