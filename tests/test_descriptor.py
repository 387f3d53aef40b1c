import itertools
import os
import tempfile
import unittest

from pydenylist.codec.descriptor import encode_descriptor
from pydenylist.descriptor import Descriptor, DescriptorBuilder, Edge, Edges, Row
from pydenylist.exceptions import DecodeError, InvariantViolation
from pydenylist.hashing import edge_order

from tests.helpers import make_keys


class TestRowParsing(unittest.TestCase):
    def setUp(self):
        self.k1, self.k2 = make_keys(2)

    def test_node_row(self):
        row = Row.from_record([str(self.k1)])
        self.assertFalse(row.is_edge)
        self.assertEqual(row.carryover, 0)

    def test_edge_row_with_optional_columns(self):
        row = Row.from_record([str(self.k1), str(self.k2), "gaming", "3"])
        self.assertTrue(row.is_edge)
        self.assertEqual(row.target_key, self.k2)
        self.assertEqual((row.reason, row.carryover), ("gaming", 3))

    def test_blank_columns_are_absent(self):
        row = Row.from_record([str(self.k1), " ", "", ""])
        self.assertIsNone(row.target_key)
        self.assertIsNone(row.reason)

    def test_mapping_record(self):
        row = Row.from_record({"public_key": str(self.k1), "carryover": 2})
        self.assertEqual(row.carryover, 2)
        with self.assertRaises(DecodeError):
            Row.from_record({"public_key": str(self.k1), "extra": "x"})

    def test_malformed_rows(self):
        with self.assertRaises(DecodeError):
            Row.from_record([])
        with self.assertRaises(DecodeError):
            Row.from_record([str(self.k1), "", "", "0", "extra"])
        with self.assertRaises(DecodeError):
            Row.from_record(["garbage"])
        with self.assertRaises(DecodeError):
            Row.from_record([str(self.k1), "", "", "-1"])
        with self.assertRaises(DecodeError):
            Row.from_record([str(self.k1), "", "", "many"])
        with self.assertRaises(DecodeError):
            Row.from_record([str(self.k1), str(self.k1)])


class TestDescriptorBuilder(unittest.TestCase):
    def setUp(self):
        self.keys = make_keys(6)

    def test_example_scenario(self):
        k1, k2, k3, k4, k5, _ = self.keys
        d = Descriptor.from_rows([[str(k1)], [str(k2)], [str(k3)], [str(k5), str(k4)]])
        self.assertEqual([n.key for n in d.nodes], sorted([k1, k2, k3]))
        self.assertEqual(len(d.edges), 1)
        source, target = d.edges.endpoints(d.edges.edges[0])
        self.assertEqual((source, target), edge_order(k4, k5))

    def test_order_independence(self):
        k1, k2, k3, k4, k5, k6 = self.keys
        rows = [
            [str(k1)],
            [str(k2), str(k3)],
            [str(k4), str(k5)],
            [str(k6), str(k3)],
            [str(k5), str(k2)],
            [str(k2)],
        ]
        expected = encode_descriptor(Descriptor.from_rows(rows))
        for perm in itertools.permutations(rows):
            self.assertEqual(encode_descriptor(Descriptor.from_rows(list(perm))), expected)

    def test_node_precedence_regardless_of_order(self):
        k1, k2, k3 = self.keys[:3]
        for rows in ([[str(k1)], [str(k1), str(k2)]], [[str(k2), str(k1)], [str(k1)]]):
            d = Descriptor.from_rows(rows + [[str(k2), str(k3)]])
            self.assertEqual(d.find_edges(k1), [])
            self.assertEqual(len(d.find_edges(k2)), 1)

    def test_first_occurrence_wins(self):
        k1, k2, k3 = self.keys[:3]
        d = Descriptor.from_rows(
            [
                [str(k1), "", "first", "1"],
                [str(k1), "", "second", "2"],
                [str(k2), str(k3), "edge-first", "5"],
                [str(k3), str(k2), "edge-second", "6"],
            ]
        )
        self.assertEqual(d.find_node(k1).reason, "first")
        [edge] = d.find_edges(k3)
        self.assertEqual((edge.reason, edge.carryover), ("edge-first", 5))

    def test_build_stats(self):
        k1, k2, k3 = self.keys[:3]
        builder = DescriptorBuilder()
        with self.assertLogs("pydenylist.descriptor", level="INFO"):
            builder.add_rows(
                [[str(k1)], [str(k1)], [str(k2), str(k3)], [str(k3), str(k2)], [str(k1), str(k2)]]
            )
            builder.build()
        self.assertEqual(builder.stats.duplicate_nodes, 1)
        self.assertEqual(builder.stats.duplicate_edges, 1)
        self.assertEqual(builder.stats.node_conflicts, 1)
        self.assertEqual(builder.stats.discarded, 3)

    def test_builder_accepts_parsed_rows(self):
        k1, k2, k3 = self.keys[:3]
        builder = DescriptorBuilder()
        builder.add_row(Row(public_key=k2, target_key=k1, reason="a"))
        builder.add_row(Row(public_key=k1, target_key=k2, reason="b"))
        builder.add_row(Row(public_key=k3))
        d = builder.build()
        self.assertEqual(builder.stats.edge_rows, 2)
        self.assertEqual(builder.stats.duplicate_edges, 1)
        [edge] = d.edges.resolve()
        self.assertEqual((edge.source, edge.target), edge_order(k1, k2))
        self.assertEqual(edge.reason, "a")
        self.assertEqual([n.key for n in d.nodes], [k3])

    def test_edge_keys_only_reference_surviving_edges(self):
        k1, k2, k3 = self.keys[:3]
        d = Descriptor.from_rows([[str(k1)], [str(k1), str(k2)], [str(k2), str(k3)]])
        self.assertEqual(set(d.edges.keys), {k2, k3})

    def test_edges_sorted_by_source_then_target(self):
        d = Descriptor.from_rows([[str(a), str(b)] for a, b in itertools.combinations(self.keys, 2)])
        pairs = [d.edges.endpoints(e) for e in d.edges.edges]
        self.assertEqual(pairs, sorted(pairs, key=lambda p: (p[0].raw, p[1].raw)))
        for source, target in pairs:
            self.assertLess(source.raw, target.raw)

    def test_edge_counts(self):
        k1, k2, k3, k4 = self.keys[:4]
        d = Descriptor.from_rows([[str(k1)], [str(k2), str(k3)], [str(k2), str(k4)]])
        counts = d.edge_counts()
        self.assertEqual(counts[k1], -1)
        self.assertEqual(counts[k2], 2)
        self.assertEqual(counts[k3], 1)
        self.assertEqual(counts[k4], 1)

    def test_find_node_missing(self):
        d = Descriptor.from_rows([[str(self.keys[0])]])
        self.assertIsNone(d.find_node(self.keys[1]))

    def test_endpoints_out_of_range_is_invariant_violation(self):
        edges = Edges(keys=tuple(self.keys[:2]), edges=(Edge(0, 5),))
        with self.assertRaises(InvariantViolation):
            edges.endpoints(edges.edges[0])


class TestDescriptorCsv(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.keys = make_keys(3)

    def tearDown(self):
        self.tmp.cleanup()

    def _write(self, text):
        path = os.path.join(self.tmp.name, "input.csv")
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def test_header_and_blank_lines(self):
        k1, k2, k3 = self.keys
        path = self._write(f"public_key,target_key,reason,carryover\n{k1}\n\n{k2},{k3},sybil,4\n")
        d = Descriptor.from_csv(path)
        self.assertEqual(d.summary(), {"nodes": 1, "edges": 1, "edge_keys": 2})

    def test_error_reports_line(self):
        path = self._write(f"{self.keys[0]}\nbogus\n")
        with self.assertRaisesRegex(DecodeError, r"input\.csv:2"):
            Descriptor.from_csv(path)


if __name__ == "__main__":
    unittest.main()
