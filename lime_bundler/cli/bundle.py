"""Command-line helpers for building bundles and inspecting their manifests."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

import yaml

from lime_bundler.backends import BACKENDS, create_bundler
from lime_bundler.build_id import compute_build_id
from lime_bundler.bundle.generators import (
    generate_chunk_manifest,
    generate_module_map,
    generate_rsc_chunk_manifest,
)
from lime_bundler.bundle.manifest import dump_manifest, load_manifest
from lime_bundler.bundle.module_map import module_map_to_json
from lime_bundler.bundle.utils import compute_hash, write_json
from lime_bundler.models import BundleResult, BundlerConfig, ClientComponentInfo
from lime_bundler.schemas.manifest import ChunkManifest, ChunkManifestWithMeta, RSCChunkManifest
from lime_bundler.settings import BundlerSettings, load_bundler_config
from lime_bundler.snapshot import load_aot_snapshot, snapshot_summary, write_snapshot

logger = logging.getLogger(__name__)

MANIFEST_KINDS: Mapping[str, Type[Any]] = {
    "chunk": ChunkManifest,
    "chunk-meta": ChunkManifestWithMeta,
    "rsc": RSCChunkManifest,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "bundle":
        return _handle_bundle(args)
    if args.command == "manifest":
        if args.manifest_command == "validate":
            return _handle_manifest_validate(args)
        parser.error("manifest command requires a subcommand")
    if args.command == "snapshot":
        if args.snapshot_command == "inspect":
            return _handle_snapshot_inspect(args)
        parser.error("snapshot command requires a subcommand")
    if args.command == "hash":
        return _handle_hash(args)
    if args.command == "watch":
        return _handle_watch(args)

    parser.error(f"Unknown command '{args.command}'")
    return 1


def run() -> None:
    sys.exit(main())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lime-bundler", description="Bundle client code and emit manifests.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    bundle = subparsers.add_parser("bundle", help="Run one build.")
    _add_build_arguments(bundle)
    bundle.add_argument("--output-dir")
    bundle.add_argument("--base-path")
    bundle.add_argument("--build-id")
    bundle.add_argument("--client-components", help="YAML/JSON list of client components.")
    bundle.add_argument("--chunk-manifest", help="Write the chunk manifest to this path.")
    bundle.add_argument("--rsc-manifest", help="Write the RSC chunk manifest to this path.")
    bundle.add_argument("--module-map", help="Write the module map to this path.")
    bundle.add_argument("--snapshot", action="store_true", help="Write snapshot.json into the output dir.")

    manifest = subparsers.add_parser("manifest", help="Manifest utilities.")
    manifest_sub = manifest.add_subparsers(dest="manifest_command", required=True)
    manifest_validate = manifest_sub.add_parser("validate", help="Validate a manifest file.")
    manifest_validate.add_argument("--manifest", required=True)
    manifest_validate.add_argument("--kind", choices=sorted(MANIFEST_KINDS), default="chunk")

    snapshot = subparsers.add_parser("snapshot", help="Snapshot utilities.")
    snapshot_sub = snapshot.add_subparsers(dest="snapshot_command", required=True)
    snapshot_inspect = snapshot_sub.add_parser("inspect", help="Show a snapshot's files and dependencies.")
    snapshot_inspect.add_argument("--dir", required=True)

    hash_cmd = subparsers.add_parser("hash", help="Print the content hash of a file.")
    hash_cmd.add_argument("file")
    hash_cmd.add_argument("--algorithm", default="SHA-256", choices=["SHA-256", "SHA-1", "MD5"])
    hash_cmd.add_argument("--length", type=int, default=16)

    watch = subparsers.add_parser("watch", help="Rebuild on every change until interrupted.")
    _add_build_arguments(watch)
    watch.add_argument("--poll-interval", type=float)

    return parser


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", required=True, help="Bundler config file (YAML or JSON).")
    parser.add_argument("--backend", choices=BACKENDS)
    parser.add_argument("--preset", help="Rolldown preset name.")


def _handle_bundle(args: argparse.Namespace) -> int:
    try:
        settings = BundlerSettings.from_env()
        config = _load_config(args)
        bundler = _create_bundler(args, settings)
    except ValueError as exc:
        return _usage_error(exc)
    build_id = args.build_id or config.build_id or compute_build_id()
    config = replace(config, build_id=build_id)

    result = bundler.bundle(config)
    payload = _result_payload(result)

    if result.success:
        components = _read_client_components(args.client_components)
        entrypoint = result.entrypoint or f"{settings.entry_name}.js"
        written: Dict[str, str] = {}
        if args.chunk_manifest:
            path = Path(args.chunk_manifest).resolve()
            dump_manifest(generate_chunk_manifest(result, entrypoint, build_id), path)
            written["chunk_manifest"] = str(path)
        if args.rsc_manifest:
            path = Path(args.rsc_manifest).resolve()
            dump_manifest(generate_rsc_chunk_manifest(result, components, build_id), path)
            written["rsc_manifest"] = str(path)
        if args.module_map:
            path = Path(args.module_map).resolve()
            write_json(module_map_to_json(generate_module_map(result, components)), path)
            written["module_map"] = str(path)
        if args.snapshot:
            written["snapshot"] = str(write_snapshot(result, Path(config.output_dir), build_id))
        payload["written"] = written

    _print_json(payload)
    return 0 if result.success else 1


def _handle_manifest_validate(args: argparse.Namespace) -> int:
    manifest_path = Path(args.manifest).resolve()
    errors: List[str] = []
    manifest = None
    try:
        manifest = load_manifest(manifest_path, MANIFEST_KINDS[args.kind])
    except (FileNotFoundError, ValueError) as exc:
        errors.append(str(exc))

    payload = {
        "manifest_path": str(manifest_path),
        "kind": args.kind,
        "valid": manifest is not None,
        "errors": errors,
        "manifest": manifest.model_dump(mode="json", by_alias=True, exclude_none=True) if manifest else None,
    }
    _print_json(payload)
    return 0


def _handle_snapshot_inspect(args: argparse.Namespace) -> int:
    snapshot_dir = Path(args.dir).resolve()
    snapshot = load_aot_snapshot(snapshot_dir)
    if snapshot is None:
        _print_json({"dir": str(snapshot_dir), "found": False})
        return 1
    _print_json({"dir": str(snapshot_dir), "found": True, **snapshot_summary(snapshot)})
    return 0


def _handle_hash(args: argparse.Namespace) -> int:
    path = Path(args.file).resolve()
    digest = compute_hash(path.read_bytes(), args.algorithm, args.length)
    _print_json({"path": str(path), "algorithm": args.algorithm, "hash": digest})
    return 0


def _handle_watch(args: argparse.Namespace) -> int:
    try:
        settings = BundlerSettings.from_env()
        config = _load_config(args)
        bundler = _create_bundler(args, settings)
    except ValueError as exc:
        return _usage_error(exc)
    if config.build_id is None:
        config = replace(config, build_id=compute_build_id())
    try:
        asyncio.run(_watch_forever(bundler, config, args.poll_interval))
    except KeyboardInterrupt:
        logger.info("Watch interrupted")
    return 0


async def _watch_forever(bundler, config: BundlerConfig, poll_interval: Optional[float]) -> None:
    first = await asyncio.to_thread(bundler.bundle, config)
    _print_json(_result_payload(first))
    watcher = await bundler.watch(config, lambda result: _print_json(_result_payload(result)), poll_interval)
    try:
        await asyncio.Event().wait()
    finally:
        await watcher.stop()


def _create_bundler(args: argparse.Namespace, settings: BundlerSettings):
    options: Dict[str, Any] = {}
    if args.preset:
        options["preset"] = args.preset
    return create_bundler(args.backend, options, settings=settings)


def _load_config(args: argparse.Namespace) -> BundlerConfig:
    config = load_bundler_config(Path(args.config))
    overrides: Dict[str, Any] = {}
    if getattr(args, "output_dir", None):
        overrides["output_dir"] = str(Path(args.output_dir).resolve())
    if getattr(args, "base_path", None):
        overrides["base_path"] = args.base_path
    return replace(config, **overrides) if overrides else config


def _read_client_components(value: Optional[str]) -> List[ClientComponentInfo]:
    if not value:
        return []
    path = Path(value).resolve()
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or []
    if not isinstance(data, list):
        raise ValueError(f"Client components file {path} must contain a list")
    components: List[ClientComponentInfo] = []
    for item in data:
        file_path = Path(item.get("file_path") or item["filePath"])
        if not file_path.is_absolute():
            file_path = path.parent / file_path
        components.append(
            ClientComponentInfo(
                file_path=file_path.as_posix(),
                relative_path=item.get("relative_path") or item["relativePath"],
                export_names=tuple(item.get("export_names") or item.get("exportNames") or ()),
            )
        )
    return components


def _usage_error(exc: Exception) -> int:
    _print_json({"success": False, "errors": [{"message": str(exc), "severity": "fatal"}]})
    return 2


def _result_payload(result: BundleResult) -> Dict[str, Any]:
    return {
        "success": result.success,
        "build_id": result.build_id,
        "entrypoint": result.entrypoint,
        "total_size": result.total_size,
        "outputs": {
            name: {"size": output.size, "hash": output.hash, "is_entry": output.is_entry}
            for name, output in result.outputs.items()
        },
        "entrypoint_manifest": {key: list(chunks) for key, chunks in result.entrypoint_manifest.items()},
        "errors": [asdict(error) for error in result.errors],
        "warnings": [asdict(warning) for warning in result.warnings],
    }


def _print_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, default=str))
