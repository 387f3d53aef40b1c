from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Callable

from . import __version__
from .descriptor import Descriptor, DescriptorBuilder, read_csv_rows
from .exceptions import DenylistError, IoError
from .filter import Filter
from .keys import PublicKey
from .manifest import Manifest, PublicKeyManifest
from .policy import GeneratorPolicy
from .verification import rebuild_and_verify, verify_filter, verify_manifest

logger = logging.getLogger("pydenylist")

DEFAULT_DESCRIPTOR = "descriptor.bin.gz"
DEFAULT_DATA = "data.bin"
DEFAULT_KEY = "public_key.json"
DEFAULT_MANIFEST = "manifest.json"
DEFAULT_FILTER = "filter.bin"


def print_json(doc: Any) -> None:
    print(json.dumps(doc, indent=2))


def _write_json_output(path: str, doc: Any, create_new: bool) -> None:
    try:
        with open(path, "x" if create_new else "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2)
            f.write("\n")
    except OSError as e:
        raise IoError(f"writing {path}: {e}") from e


def _serial(value: str) -> int:
    serial = int(value)
    if not 0 <= serial <= 0xFFFFFFFF:
        raise argparse.ArgumentTypeError(f"serial must fit in uint32: {value}")
    return serial


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pydenylist", description="Build, sign and verify denylist filters.")
    p.add_argument("-v", "--verbose", action="store_true", help="log debug output to stderr")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)

    desc = sub.add_parser("descriptor", help="build and query descriptors")
    desc_sub = desc.add_subparsers(dest="op", required=True)
    d1 = desc_sub.add_parser("generate", help="canonicalize a CSV of keys and edges")
    d1.add_argument("input")
    d1.add_argument("output", nargs="?", default=DEFAULT_DESCRIPTOR)
    d1.add_argument("-f", "--force", action="store_true", help="overwrite an existing output file")
    d2 = desc_sub.add_parser("count-edges", help="edge count per key; full nodes count -1")
    d2.add_argument("input", nargs="?", default=DEFAULT_DESCRIPTOR)
    d2.add_argument("output", nargs="?")  # stdout when omitted
    d3 = desc_sub.add_parser("find-node")
    d3.add_argument("key")
    d3.add_argument("-i", "--input", default=DEFAULT_DESCRIPTOR)
    d4 = desc_sub.add_parser("find-edges")
    d4.add_argument("key")
    d4.add_argument("-i", "--input", default=DEFAULT_DESCRIPTOR)
    d5 = desc_sub.add_parser("info")
    d5.add_argument("input", nargs="?", default=DEFAULT_DESCRIPTOR)

    data = sub.add_parser("data", help="signing bytes")
    data_sub = data.add_subparsers(dest="op", required=True)
    g1 = data_sub.add_parser("generate", help="write the signing bytes for a descriptor")
    g1.add_argument("input", nargs="?", default=DEFAULT_DESCRIPTOR)
    g1.add_argument("output", nargs="?", default=DEFAULT_DATA)
    g1.add_argument("-s", "--serial", type=_serial, required=True)
    g1.add_argument("-f", "--force", action="store_true", help="overwrite an existing output file")

    man = sub.add_parser("manifest", help="signature manifests")
    man_sub = man.add_subparsers(dest="op", required=True)
    for name in ("generate", "verify"):
        m = man_sub.add_parser(name)
        m.add_argument("-d", "--data", default=DEFAULT_DATA)
        m.add_argument("-k", "--key", default=DEFAULT_KEY)
        m.add_argument("-m", "--manifest", default=DEFAULT_MANIFEST)
        if name == "generate":
            m.add_argument("-f", "--force", action="store_true", help="overwrite an existing manifest")

    flt = sub.add_parser("filter", help="signed filters")
    flt_sub = flt.add_subparsers(dest="op", required=True)
    f1 = flt_sub.add_parser("generate", help="rebuild, sign and verify a filter")
    f1.add_argument("-i", "--input", default=DEFAULT_DESCRIPTOR)
    f1.add_argument("-k", "--key", default=DEFAULT_KEY)
    f1.add_argument("-m", "--manifest", default=DEFAULT_MANIFEST)
    f1.add_argument("-o", "--output", default=DEFAULT_FILTER)
    f1.add_argument("-f", "--force", action="store_true", help="overwrite an existing output file")
    f2 = flt_sub.add_parser("contains")
    f2.add_argument("key")
    f2.add_argument("-i", "--input", default=DEFAULT_FILTER)
    f3 = flt_sub.add_parser("contains-edge")
    f3.add_argument("source")
    f3.add_argument("target")
    f3.add_argument("-i", "--input", default=DEFAULT_FILTER)
    f4 = flt_sub.add_parser("verify")
    f4.add_argument("-i", "--input", default=DEFAULT_FILTER)
    f4.add_argument("-k", "--key", default=DEFAULT_KEY)
    f5 = flt_sub.add_parser("info")
    f5.add_argument("-i", "--input", default=DEFAULT_FILTER)

    key = sub.add_parser("key", help="signer sets")
    key_sub = key.add_subparsers(dest="op", required=True)
    k1 = key_sub.add_parser("info", help="aggregate address of a key manifest")
    k1.add_argument("input", nargs="?", default=DEFAULT_KEY)
    return p


# --- descriptor ---
def _descriptor_generate(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    builder = DescriptorBuilder()
    builder.add_rows(read_csv_rows(args.input))
    descriptor = builder.build()
    descriptor.to_path(
        args.output,
        compress=None if policy.compress_descriptor else False,
        create_new=not args.force,
    )
    summary: dict[str, Any] = descriptor.summary()
    summary["discarded"] = builder.stats.discarded
    print_json(summary)
    return 0


def _descriptor_count_edges(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    counts = Descriptor.from_path(args.input).edge_counts()
    doc = {str(k): v for k, v in counts.items()}
    if args.output:
        _write_json_output(args.output, doc, create_new=False)
    else:
        print_json(doc)
    return 0


def _descriptor_find_node(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    key = PublicKey.from_string(args.key)
    node = Descriptor.from_path(args.input).find_node(key)
    if node is None:
        print_json({"address": str(key), "found": False})
        return 1
    print_json({"address": str(key), "found": True, "reason": node.reason, "carryover": node.carryover})
    return 0


def _descriptor_find_edges(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    key = PublicKey.from_string(args.key)
    edges = Descriptor.from_path(args.input).find_edges(key)
    print_json(
        {
            "address": str(key),
            "edges": [
                {"source": str(e.source), "target": str(e.target), "reason": e.reason, "carryover": e.carryover}
                for e in edges
            ],
        }
    )
    return 0


def _descriptor_info(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    print_json(Descriptor.from_path(args.input).summary())
    return 0


# --- data / manifest ---
def _data_generate(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    descriptor = Descriptor.from_path(args.input)
    flt = Filter.from_descriptor(
        args.serial,
        descriptor,
        version=policy.filter_version,
        kind=policy.resolved_kind(),
        max_attempts=policy.max_build_attempts,
    )
    flt.to_signing_path(args.output, create_new=not args.force)
    print_json({"serial": flt.serial, "hash": flt.hash_b64()})
    return 0


def _manifest_generate(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    flt = Filter.from_signing_path(args.data, policy.filter_version)
    key_manifest = PublicKeyManifest.from_path(args.key)
    manifest = Manifest.for_filter(flt, key_manifest)
    manifest.to_path(args.manifest, create_new=not args.force)
    print_json(manifest.to_dict())
    return 0


def _manifest_verify(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    manifest = Manifest.from_path(args.manifest)
    key_manifest = PublicKeyManifest.from_path(args.key)
    flt = Filter.from_signing_path(args.data, policy.filter_version)
    report = verify_manifest(flt, manifest)
    doc = report.to_dict()
    doc["address"] = str(key_manifest.public_key())
    doc["signing_data"] = args.data
    print_json(doc)
    return 0


# --- filter ---
def _filter_generate(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    manifest = Manifest.from_path(args.manifest)
    key_manifest = PublicKeyManifest.from_path(args.key)
    descriptor = Descriptor.from_path(args.input)
    flt = rebuild_and_verify(descriptor, manifest, key_manifest, policy)
    flt.to_path(args.output, create_new=not args.force)
    print_json({"address": str(key_manifest.public_key()), "verified": True})
    return 0


def _filter_contains(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    key = PublicKey.from_string(args.key)
    print_json({"address": str(key), "in_filter": Filter.from_path(args.input).contains(key)})
    return 0


def _filter_contains_edge(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    source = PublicKey.from_string(args.source)
    target = PublicKey.from_string(args.target)
    print_json(
        {
            "source": str(source),
            "target": str(target),
            "in_filter": Filter.from_path(args.input).contains_edge(source, target),
        }
    )
    return 0


def _filter_verify(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    flt = Filter.from_path(args.input)
    key_manifest = PublicKeyManifest.from_path(args.key)
    verified = verify_filter(flt, key_manifest)
    print_json({"address": str(key_manifest.public_key()), "verified": verified})
    return 0 if verified else 1


def _filter_info(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    print_json(Filter.from_path(args.input).info())
    return 0


def _key_info(args: argparse.Namespace, policy: GeneratorPolicy) -> int:
    print_json(PublicKeyManifest.from_path(args.input).info())
    return 0


_COMMANDS: dict[tuple[str, str], Callable[[argparse.Namespace, GeneratorPolicy], int]] = {
    ("descriptor", "generate"): _descriptor_generate,
    ("descriptor", "count-edges"): _descriptor_count_edges,
    ("descriptor", "find-node"): _descriptor_find_node,
    ("descriptor", "find-edges"): _descriptor_find_edges,
    ("descriptor", "info"): _descriptor_info,
    ("data", "generate"): _data_generate,
    ("manifest", "generate"): _manifest_generate,
    ("manifest", "verify"): _manifest_verify,
    ("filter", "generate"): _filter_generate,
    ("filter", "contains"): _filter_contains,
    ("filter", "contains-edge"): _filter_contains_edge,
    ("filter", "verify"): _filter_verify,
    ("filter", "info"): _filter_info,
    ("key", "info"): _key_info,
}


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    handler = _COMMANDS.get((args.cmd, args.op))
    if handler is None:
        return 2
    try:
        policy = GeneratorPolicy.from_env()
        return handler(args, policy)
    except DenylistError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
