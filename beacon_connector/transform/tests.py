"""
Tests for the record transformation stages.
"""
import logging
import unittest

from .classifier import FieldClassifier, drop_blank_fields
from .sequence import SequenceTagger
from .point_builder import PointBuilder
from ..schema.models import EventTime, SequenceState, SOURCE_TAG_KEY, precision_time

T_NS = 1293974055000000000  # 2011-01-02 13:14:15 UTC


class TestPrecisionTime(unittest.TestCase):
    """Test cases for batch timestamp conversion."""

    def test_integer_seconds(self):
        self.assertEqual(precision_time(1293974055), T_NS)

    def test_event_time_keeps_nanoseconds(self):
        self.assertEqual(precision_time(EventTime(1293974055, 123456789)), T_NS + 123456789)

    def test_float_seconds(self):
        self.assertEqual(precision_time(1293974055.5), T_NS + 500000000)


class TestFieldClassifier(unittest.TestCase):
    """Test cases for FieldClassifier."""

    def test_drop_blank_fields(self):
        """None and empty strings are removed, falsy scalars are kept."""
        record = {'a': 1, 'b': None, 'c': '', 'd': 0, 'e': False}
        self.assertEqual(drop_blank_fields(record), {'a': 1, 'd': 0, 'e': False})

    def test_all_values_without_tagging(self):
        classifier = FieldClassifier()
        result = classifier.classify({'a': 1, 'b': 'text', 'c': None}, T_NS)
        self.assertEqual(result.timestamp, T_NS)
        self.assertEqual(result.values, {'a': 1, 'b': 'text'})
        self.assertEqual(result.tags, {})

    def test_record_is_not_mutated(self):
        classifier = FieldClassifier(tag_keys=['b'])
        record = {'a': 1, 'b': ' x ', 'time': 5, 'c': None}
        classifier.classify(record, T_NS)
        self.assertEqual(record, {'a': 1, 'b': ' x ', 'time': 5, 'c': None})

    def test_tag_keys(self):
        """Listed keys become trimmed tags; blank tags disappear entirely."""
        classifier = FieldClassifier(tag_keys=['b'])

        result = classifier.classify({'a': 1, 'b': ''}, T_NS)
        self.assertEqual((result.values, result.tags), ({'a': 1}, {}))

        result = classifier.classify({'a': 2, 'b': 1}, T_NS)
        self.assertEqual((result.values, result.tags), ({'a': 2}, {'b': '1'}))

        result = classifier.classify({'a': 3, 'b': ' '}, T_NS)
        self.assertEqual((result.values, result.tags), ({'a': 3}, {}))

    def test_auto_tags_only_strings(self):
        classifier = FieldClassifier(auto_tags=True)

        result = classifier.classify({'a': 1, 'b': '1'}, T_NS)
        self.assertEqual((result.values, result.tags), ({'a': 1}, {'b': '1'}))

        result = classifier.classify({'a': 2, 'b': 1}, T_NS)
        self.assertEqual((result.values, result.tags), ({'a': 2, 'b': 1}, {}))

        result = classifier.classify({'a': 3, 'b': ' '}, T_NS)
        self.assertEqual((result.values, result.tags), ({'a': 3}, {}))

    def test_only_tags_leaves_no_values(self):
        classifier = FieldClassifier(tag_keys=['b'])
        result = classifier.classify({'b': '3'}, T_NS)
        self.assertFalse(result.has_values)
        self.assertEqual(result.tags, {'b': '3'})

    def test_time_key_override_is_verbatim(self):
        classifier = FieldClassifier(time_key='b')
        result = classifier.classify({'a': 1, 'b': 1293974055000000000}, 1577970855000000000)
        self.assertEqual(result.timestamp, 1293974055000000000)
        self.assertEqual(result.values, {'a': 1})

    def test_time_key_absent_uses_batch_time(self):
        classifier = FieldClassifier()
        result = classifier.classify({'a': 1}, T_NS)
        self.assertEqual(result.timestamp, T_NS)

    def test_time_key_false_uses_batch_time(self):
        classifier = FieldClassifier(time_key='t')
        result = classifier.classify({'a': 1, 't': False}, T_NS)
        self.assertEqual(result.timestamp, T_NS)
        self.assertEqual(result.values, {'a': 1})

    def test_composite_values_discarded(self):
        classifier = FieldClassifier()
        with self.assertLogs('beacon_connector.transform.classifier', level='WARNING') as logs:
            result = classifier.classify({'a': 1, 'list': [1, 2], 'map': {'k': 'v'}}, T_NS)
        self.assertEqual(result.values, {'a': 1})
        self.assertEqual(len(logs.records), 2)
        self.assertIn("'list'", logs.output[0])

    def test_non_finite_floats_discarded(self):
        classifier = FieldClassifier()
        record = {'a': 1.5, 'nan': float('nan'), 'inf': float('inf'), 'ninf': float('-inf')}
        with self.assertLogs('beacon_connector.transform.classifier', level='WARNING') as logs:
            result = classifier.classify(record, T_NS)
        self.assertEqual(result.values, {'a': 1.5})
        self.assertEqual(len(logs.records), 3)

    def test_only_non_finite_leaves_no_values(self):
        classifier = FieldClassifier()
        with self.assertLogs('beacon_connector.transform.classifier', level='WARNING'):
            result = classifier.classify({'x': float('nan')}, T_NS)
        self.assertFalse(result.has_values)

    def test_composite_tag_key_is_rendered_as_text(self):
        classifier = FieldClassifier(tag_keys=['b'])
        result = classifier.classify({'a': 1, 'b': [1, 2]}, T_NS)
        self.assertEqual(result.tags, {'b': '[1, 2]'})

    def test_cast_number_to_float(self):
        classifier = FieldClassifier(cast_number_to_float=True)
        result = classifier.classify({'a': 1, 'b': 2.5, 'c': True, 'd': 'x'}, T_NS)
        self.assertEqual(result.values, {'a': 1.0, 'b': 2.5, 'c': True, 'd': 'x'})
        self.assertIsInstance(result.values['a'], float)
        self.assertIs(result.values['c'], True)

    def test_boolean_tag_text(self):
        classifier = FieldClassifier(tag_keys=['flag'])
        result = classifier.classify({'a': 1, 'flag': True}, T_NS)
        self.assertEqual(result.tags, {'flag': 'true'})


class TestSequenceTagger(unittest.TestCase):
    """Test cases for SequenceTagger."""

    def test_increment_and_reset(self):
        tagger = SequenceTagger('_seq')
        self.assertEqual(tagger.next_sequence(T_NS), 0)
        self.assertEqual(tagger.next_sequence(T_NS), 1)
        self.assertEqual(tagger.next_sequence(T_NS + 1), 0)
        self.assertEqual(tagger.next_sequence(T_NS + 1), 1)
        self.assertEqual(tagger.next_sequence(T_NS + 1), 2)
        self.assertEqual(tagger.next_sequence(T_NS), 0)

    def test_state_is_explicit(self):
        state = SequenceState()
        tagger = SequenceTagger('_seq', state)
        tagger.next_sequence(T_NS)
        tagger.next_sequence(T_NS)
        self.assertEqual(state, SequenceState(last_timestamp=T_NS, counter=1))

    def test_instances_do_not_share_state(self):
        first = SequenceTagger('_seq')
        second = SequenceTagger('_seq')
        first.next_sequence(T_NS)
        first.next_sequence(T_NS)
        self.assertEqual(second.next_sequence(T_NS), 0)

    def test_tag_returns_new_mapping(self):
        tagger = SequenceTagger('_seq')
        tags = {'_seq': 'user', 'host': 'a'}
        tagged = tagger.tag(tags, T_NS)
        self.assertEqual(tagged, {'_seq': 0, 'host': 'a'})
        self.assertEqual(tags, {'_seq': 'user', 'host': 'a'})

    def test_disabled_is_noop(self):
        tagger = SequenceTagger(None)
        tags = {'host': 'a'}
        self.assertIs(tagger.tag(tags, T_NS), tags)
        self.assertIsNone(tagger.state.last_timestamp)


class TestPointBuilder(unittest.TestCase):
    """Test cases for PointBuilder."""

    def setUp(self):
        self.builder = PointBuilder('test-source-name')

    def test_source_tag_added(self):
        point = self.builder.build(T_NS, 'test', {'a': 1}, {})
        self.assertEqual(point.to_dict(), {
            'timestamp': T_NS,
            'series': 'test',
            'tags': {SOURCE_TAG_KEY: 'test-source-name'},
            'values': {'a': 1},
        })

    def test_source_tag_cannot_be_overridden(self):
        point = self.builder.build(T_NS, 'test', {'a': 1}, {SOURCE_TAG_KEY: 'spoofed', 'b': '1'})
        self.assertEqual(point.tags, {SOURCE_TAG_KEY: 'test-source-name', 'b': '1'})

    def test_series_defaults_to_batch_tag(self):
        self.assertEqual(self.builder.series_for('input.influxdb'), 'input.influxdb')
        self.assertEqual(PointBuilder('src', measurement='test').series_for('input.influxdb'), 'test')

    def test_empty_values_rejected(self):
        with self.assertRaises(ValueError):
            self.builder.build(T_NS, 'test', {}, {})


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
