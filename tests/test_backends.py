from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import List
from unittest import mock

import pytest

from lime_bundler.backends import (
    DenoBundlerBackend,
    EsbuildBundlerBackend,
    RolldownBundlerBackend,
    RolldownOptions,
    RolldownPresets,
    create_bundler,
    create_rolldown_with_preset,
    get_default_bundler,
)
from lime_bundler.backends.base import scoped_temp_dir
from lime_bundler.backends.rolldown import AdvancedChunksConfig, ChunkGroup, merge_options
from lime_bundler.bundle.utils import compute_hash
from lime_bundler.models import TransformResult
from lime_bundler.settings import BundlerSettings

RUN = "lime_bundler.backends.base.subprocess.run"


def _done(cmd, returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr=stderr)


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class TestCreateBundler:
    def test_unknown_backend_raises(self, settings: BundlerSettings) -> None:
        with pytest.raises(ValueError, match="Unknown bundler backend: webpack"):
            create_bundler("webpack", settings=settings)

    def test_known_backends(self, settings: BundlerSettings) -> None:
        assert isinstance(create_bundler("rolldown", settings=settings), RolldownBundlerBackend)
        assert isinstance(create_bundler("deno-bundler", settings=settings), DenoBundlerBackend)
        assert isinstance(create_bundler("deno", settings=settings), DenoBundlerBackend)
        assert isinstance(create_bundler("esbuild", settings=settings), EsbuildBundlerBackend)
        assert get_default_bundler(settings).name == "rolldown"

    def test_backend_defaults_to_settings(self) -> None:
        bundler = create_bundler(settings=BundlerSettings(backend="esbuild"))

        assert bundler.name == "esbuild"

    def test_common_options(self, settings: BundlerSettings) -> None:
        bundler = create_bundler("deno-bundler", {"build_id": "abc", "entry_name": "client"}, settings=settings)

        assert bundler.build_id == "abc"
        assert bundler.entry_name == "client"

    def test_unsupported_options_rejected(self, settings: BundlerSettings) -> None:
        with pytest.raises(ValueError, match="Unsupported options"):
            create_bundler("esbuild", {"preset": "react"}, settings=settings)

    def test_rolldown_preset_option(self, settings: BundlerSettings) -> None:
        bundler = create_bundler("rolldown", {"preset": "react"}, settings=settings)

        assert bundler.options.advanced_chunks.min_size == 10000


def test_scoped_temp_dir_removed_on_error() -> None:
    with pytest.raises(RuntimeError):
        with scoped_temp_dir("lime-test-") as temp_dir:
            (temp_dir / "file.txt").write_text("x", encoding="utf-8")
            raise RuntimeError("boom")

    assert not temp_dir.exists()


class TestDenoBackend:
    def _fake_deno(self, calls: List[list]):
        def run(cmd, **kwargs):
            calls.append(list(cmd))
            out_dir = Path(cmd[cmd.index("--outdir") + 1])
            dist = out_dir / "dist"
            _write(dist / "_client-entry.js", 'import{a as b}from"../chunk-AAA.js";fetch("/_lime/alive");')
            _write(dist / "chunk-BBB.js", 'import{a}from"..chunk-AAA.js";var x=a;export{x as Counter};')
            _write(
                dist / "src" / "app" / "counter.js",
                'import{Counter as A}from"../../chunk-BBB.js";import"../../chunk-AAA.js";export{A as default};',
            )
            _write(out_dir / "chunk-AAA.js", "export const a=1;")
            if any(arg.endswith("_build-id-entry.ts") for arg in cmd):
                _write(dist / "_build-id-entry.js", 'const BUILD_ID="abc";export{BUILD_ID};')
            return _done(cmd)

        return run

    def test_bundle_normalizes_and_infers_manifest(self, make_config, settings, tmp_path: Path) -> None:
        config = make_config(base_path="/app")
        calls: List[list] = []
        bundler = DenoBundlerBackend(settings=settings)

        with mock.patch(RUN, side_effect=self._fake_deno(calls)):
            result = bundler.bundle(config)

        assert result.success, result.errors
        assert set(result.outputs) == {"main.js", "chunk-AAA.js", "chunk-BBB.js"}
        main = result.outputs["main.js"]
        assert main.code == b'import{a as b}from"./chunk-AAA.js";fetch("/app/_lime/alive");'
        assert main.hash == compute_hash(main.code)
        assert result.outputs["chunk-BBB.js"].code.startswith(b'import{a}from"./chunk-AAA.js"')
        assert result.entrypoint == "main.js"
        counter_path = config.entrypoints["src/app/counter.tsx"]
        assert result.entrypoint_manifest == {counter_path: ("chunk-BBB.js", "chunk-AAA.js")}
        assert result.total_size == sum(output.size for output in result.outputs.values())
        assert (Path(config.output_dir) / "main.js").read_bytes() == main.code

        cmd = calls[0]
        assert cmd[:2] == ["deno", "bundle"]
        assert "--code-splitting" in cmd
        assert not Path(cmd[cmd.index("--outdir") + 1]).parent.exists()

    def test_build_id_entry_prepended(self, make_config, settings) -> None:
        calls: List[list] = []
        bundler = DenoBundlerBackend(build_id="abc", settings=settings)

        with mock.patch(RUN, side_effect=self._fake_deno(calls)):
            result = bundler.bundle(make_config())

        assert result.success
        assert result.build_id == "abc"
        assert "build-id.js" in result.outputs
        assert calls[0][-3].endswith("_build-id-entry.ts")

    def test_config_build_id_overrides_backend_default(self, make_config, settings) -> None:
        calls: List[list] = []
        bundler = DenoBundlerBackend(build_id="abc", settings=settings)

        with mock.patch(RUN, side_effect=self._fake_deno(calls)):
            result = bundler.bundle(make_config(build_id="xyz"))

        assert result.build_id == "xyz"

    def test_plugins_run_before_hashing(self, make_config, settings) -> None:
        class Banner:
            name = "banner"

            def setup(self, build) -> None:
                build.on_transform(r"^main\.js$", lambda args: TransformResult(code="/*banner*/" + args.code))

        bundler = DenoBundlerBackend(settings=settings)

        with mock.patch(RUN, side_effect=self._fake_deno([])):
            result = bundler.bundle(make_config(plugins=[Banner()]))

        main = result.outputs["main.js"]
        assert main.code.startswith(b"/*banner*/")
        assert main.hash == compute_hash(main.code)

    def test_engine_failure_becomes_error_result(self, make_config, settings, tmp_path: Path) -> None:
        stderr = 'error: Module not found "file:///project/src/nope.ts".\n    at file:///project/src/main.tsx:1:8\n'
        bundler = DenoBundlerBackend(settings=settings)

        with mock.patch(RUN, side_effect=lambda cmd, **kwargs: _done(cmd, 1, stderr)):
            result = bundler.bundle(make_config())

        assert result.success is False
        assert len(result.errors) == 1
        assert result.errors[0].severity == "error"
        assert result.errors[0].line == 1
        assert dict(result.outputs) == {}
        assert not (tmp_path / "dist").exists()

    def test_spawn_failure_is_fatal(self, make_config, settings) -> None:
        bundler = DenoBundlerBackend(settings=settings)

        with mock.patch(RUN, side_effect=FileNotFoundError("deno")):
            result = bundler.bundle(make_config())

        assert result.success is False
        assert result.errors[0].severity == "fatal"
        assert "deno" in result.errors[0].message


class TestRolldownBackend:
    def _fake_node(self, report: dict, returncode: int = 0, seen: dict | None = None):
        def run(cmd, **kwargs):
            script, options_path, result_path = (Path(arg) for arg in cmd[1:4])
            assert script.exists()
            if seen is not None:
                seen.update(json.loads(options_path.read_text(encoding="utf-8")))
            result_path.write_text(json.dumps(report), encoding="utf-8")
            return _done(cmd, returncode)

        return run

    def test_direct_strategy(self, tmp_path: Path, settings) -> None:
        from lime_bundler.models import BundlerConfig

        config = BundlerConfig(entrypoints={"main": "/src/main.tsx"}, output_dir=str(tmp_path / "out"))
        report = {
            "output": [
                {
                    "type": "chunk",
                    "fileName": "main.js",
                    "isEntry": True,
                    "facadeModuleId": "/src/main.tsx",
                    "imports": ["chunk-1.js"],
                    "dynamicImports": ["chunk-2.js"],
                    "code": 'import"./chunk-1.js";import("./chunk-2.js");',
                    "map": None,
                },
                {
                    "type": "chunk",
                    "fileName": "chunk-1.js",
                    "isEntry": False,
                    "facadeModuleId": None,
                    "imports": [],
                    "code": "export const one=1;",
                    "map": None,
                },
                {"type": "asset", "fileName": "logo.svg", "source": "PHN2Zy8+", "encoding": "base64"},
            ]
        }
        seen: dict = {}

        with mock.patch(RUN, side_effect=self._fake_node(report, seen=seen)):
            result = RolldownBundlerBackend(settings=settings).bundle(config)

        assert result.success, result.errors
        assert result.entrypoint_manifest == {"/src/main.tsx": ("main.js", "chunk-1.js")}
        assert result.entrypoint == "main.js"
        assert result.outputs["logo.svg"].code == b"<svg/>"
        assert [(item.path, item.kind) for item in result.metafile.outputs["main.js"].imports] == [
            ("chunk-1.js", "import-statement"),
            ("chunk-2.js", "dynamic-import"),
        ]
        assert result.metafile.outputs["main.js"].entry_point == "/src/main.tsx"
        assert seen["output"]["chunkFileNames"] == "chunk-[hash].js"
        assert seen["output"]["format"] == "es"
        assert "advancedChunks" not in seen["output"]
        assert (tmp_path / "out" / "logo.svg").read_bytes() == b"<svg/>"

    def test_external_sourcemap_written_next_to_chunk(self, tmp_path: Path, settings) -> None:
        from lime_bundler.models import BundlerConfig

        config = BundlerConfig(entrypoints={"main": "/src/main.tsx"}, output_dir=str(tmp_path / "out"), sourcemap=True)
        report = {
            "output": [
                {
                    "type": "chunk",
                    "fileName": "main.js",
                    "isEntry": True,
                    "facadeModuleId": "/src/main.tsx",
                    "imports": [],
                    "code": "run();",
                    "map": '{"version":3}',
                }
            ]
        }

        with mock.patch(RUN, side_effect=self._fake_node(report)):
            result = RolldownBundlerBackend(settings=settings).bundle(config)

        assert result.outputs["main.js"].code == b"run();\n//# sourceMappingURL=main.js.map"
        assert result.outputs["main.js.map"].code == b'{"version":3}'

    def test_runner_errors_reported(self, make_config, settings) -> None:
        report = {"errors": [{"message": "Could not resolve './x'", "file": "/src/main.tsx", "line": 2, "column": 4}]}

        with mock.patch(RUN, side_effect=self._fake_node(report, returncode=1)):
            result = RolldownBundlerBackend(settings=settings).bundle(make_config())

        assert not result.success
        assert result.errors[0].message == "Could not resolve './x'"
        assert (result.errors[0].file, result.errors[0].line, result.errors[0].column) == ("/src/main.tsx", 2, 4)
        assert dict(result.outputs) == {}

    def test_missing_report_is_fatal(self, make_config, settings) -> None:
        with mock.patch(RUN, side_effect=lambda cmd, **kwargs: _done(cmd)):
            result = RolldownBundlerBackend(settings=settings).bundle(make_config())

        assert not result.success
        assert result.errors[0].severity == "fatal"

    def test_advanced_chunks_passed_to_runner(self, settings) -> None:
        bundler = create_rolldown_with_preset("react", settings=settings)
        from lime_bundler.models import BundlerConfig

        options = bundler.runner_options(BundlerConfig(entrypoints={"main": "/src/main.tsx"}, output_dir="dist"))

        chunks = options["output"]["advancedChunks"]
        assert chunks["minSize"] == 10000
        assert [group["name"] for group in chunks["groups"]] == ["react-vendor", "vendor"]
        assert options["treeshake"] is True

    def test_nested_entry_keeps_parent_relative_chunk_imports(self, tmp_path: Path, settings) -> None:
        from lime_bundler.models import BundlerConfig

        config = BundlerConfig(
            entrypoints={"islands/counter": "/src/islands/counter.tsx"},
            output_dir=str(tmp_path / "out"),
            base_path="/app",
        )
        code = 'import{a}from"../chunk-AB.js";fetch("/_lime/alive");export{a as default};'
        report = {
            "output": [
                {
                    "type": "chunk",
                    "fileName": "islands/counter.js",
                    "isEntry": True,
                    "facadeModuleId": "/src/islands/counter.tsx",
                    "imports": ["chunk-AB.js"],
                    "code": code,
                    "map": None,
                },
                {"type": "chunk", "fileName": "chunk-AB.js", "isEntry": False, "imports": [], "code": "export const a=1;"},
            ]
        }

        with mock.patch(RUN, side_effect=self._fake_node(report)):
            result = RolldownBundlerBackend(settings=settings).bundle(config)

        served = result.outputs["islands/counter.js"]
        assert served.code == b'import{a}from"../chunk-AB.js";fetch("/app/_lime/alive");export{a as default};'
        assert served.hash == compute_hash(served.code)
        assert (tmp_path / "out" / "islands" / "counter.js").read_bytes() == served.code


class TestRolldownPresets:
    def test_default(self) -> None:
        preset = RolldownPresets.default()

        assert preset.treeshake is True
        assert preset.advanced_chunks.min_size == 20000
        assert preset.advanced_chunks.groups == ()

    def test_library_and_ssr(self) -> None:
        assert RolldownPresets.library().preserve_entry_signatures == "strict"
        assert RolldownPresets.library().advanced_chunks.min_size == 0
        ssr = RolldownPresets.ssr()
        assert ssr.module_side_effects == "no-external"
        assert [group.name for group in ssr.advanced_chunks.groups] == ["react-vendor", "framework", "vendor"]

    def test_performance(self) -> None:
        preset = RolldownPresets.performance()

        assert preset.module_side_effects is False
        assert preset.advanced_chunks.max_size == 250000
        assert preset.advanced_chunks.groups[0].priority == 40

    def test_overrides_merge_advanced_chunks(self) -> None:
        merged = merge_options(RolldownPresets.react(), {"advanced_chunks": {"min_size": 5000}, "treeshake": False})

        assert merged.treeshake is False
        assert merged.advanced_chunks.min_size == 5000
        assert len(merged.advanced_chunks.groups) == 2

    def test_overrides_replace_groups(self) -> None:
        merged = merge_options(
            RolldownPresets.default(),
            {"advanced_chunks": AdvancedChunksConfig(groups=(ChunkGroup("ui", r"ui", 5),))},
        )

        assert merged.advanced_chunks.min_size == 20000
        assert merged.advanced_chunks.groups == (ChunkGroup("ui", r"ui", 5),)

    def test_unknown_preset_and_option(self) -> None:
        with pytest.raises(ValueError, match="Unknown rolldown preset"):
            create_rolldown_with_preset("turbo")
        with pytest.raises(ValueError, match="Unknown rolldown options"):
            merge_options(RolldownOptions(), {"bogus": 1})


class TestEsbuildBackend:
    def test_metafile_drives_direct_strategy(self, make_config, settings) -> None:
        config = make_config()
        main_entry = config.entrypoints["main"]
        counter_entry = config.entrypoints["src/app/counter.tsx"]
        calls: List[list] = []

        def run(cmd, cwd=None, **kwargs):
            calls.append(list(cmd))
            temp_dir = Path(cwd)
            _write(temp_dir / "out" / "main.js", 'import"./chunk-SHARED.js";fetch("/_lime/alive");')
            _write(temp_dir / "out" / "src" / "app" / "counter.js", 'import{s}from"../../chunk-SHARED.js";export{s as default};')
            _write(temp_dir / "out" / "chunk-SHARED.js", "export const s=1;")
            metafile = {
                "inputs": {
                    "src/main.tsx": {"bytes": 21, "imports": [{"path": "react", "kind": "import-statement", "external": True}]}
                },
                "outputs": {
                    "out/main.js": {
                        "bytes": 40,
                        "entryPoint": main_entry,
                        "imports": [{"path": "out/chunk-SHARED.js", "kind": "import-statement"}],
                    },
                    "out/src/app/counter.js": {
                        "bytes": 50,
                        "entryPoint": counter_entry,
                        "imports": [
                            {"path": "out/chunk-SHARED.js", "kind": "import-statement"},
                            {"path": "react", "kind": "import-statement", "external": True},
                        ],
                    },
                    "out/chunk-SHARED.js": {"bytes": 16, "imports": []},
                },
            }
            _write(temp_dir / "meta.json", json.dumps(metafile))
            return _done(cmd)

        with mock.patch(RUN, side_effect=run):
            result = EsbuildBundlerBackend(settings=settings).bundle(config)

        assert result.success, result.errors
        assert result.entrypoint == "main.js"
        assert dict(result.entrypoint_manifest) == {
            main_entry: ("main.js", "chunk-SHARED.js"),
            counter_entry: ("src/app/counter.js", "chunk-SHARED.js"),
        }
        assert result.outputs["src/app/counter.js"].is_entry is True
        assert result.outputs["chunk-SHARED.js"].is_entry is False
        assert result.metafile.inputs["src/main.tsx"].imports[0].external is True
        assert (Path(config.output_dir) / "src" / "app" / "counter.js").exists()

        cmd = calls[0]
        assert f"main={Path(main_entry).resolve().as_posix()}" in cmd
        assert "--splitting" in cmd
        assert "--chunk-names=chunk-[hash]" in cmd

    def test_failure_reports_esbuild_errors(self, make_config, settings) -> None:
        stderr = '✘ [ERROR] Could not resolve "./nope"\n\n    src/main.tsx:1:7:\n'

        with mock.patch(RUN, side_effect=lambda cmd, **kwargs: _done(cmd, 1, stderr)):
            result = EsbuildBundlerBackend(settings=settings).bundle(make_config())

        assert not result.success
        assert result.errors[0].file == "src/main.tsx"
        assert dict(result.outputs) == {}

    def test_command_flags(self, make_config, settings) -> None:
        config = make_config(
            minify=True,
            sourcemap="inline",
            target=("es2020", "chrome100"),
            define={"process.env.NODE_ENV": '"production"'},
            external=("react",),
            format="cjs",
        )

        cmd = EsbuildBundlerBackend(settings=settings).command(config)

        assert "--minify" in cmd
        assert "--sourcemap=inline" in cmd
        assert "--target=es2020,chrome100" in cmd
        assert '--define:process.env.NODE_ENV="production"' in cmd
        assert "--external:react" in cmd
        assert "--splitting" not in cmd

    def test_nested_entry_keeps_parent_relative_chunk_imports(self, project: Path, tmp_path: Path, settings) -> None:
        from lime_bundler.models import BundlerConfig

        entry = (project / "src" / "app" / "counter.tsx").as_posix()
        config = BundlerConfig(
            entrypoints={"islands/counter.tsx": entry},
            output_dir=str(tmp_path / "dist"),
            base_path="/app",
        )

        def run(cmd, cwd=None, **kwargs):
            temp_dir = Path(cwd)
            _write(
                temp_dir / "out" / "islands" / "counter.js",
                'import{a}from"../chunk-AB.js";fetch("/_lime/alive");export{a as default};',
            )
            _write(temp_dir / "out" / "chunk-AB.js", "export const a=1;")
            metafile = {
                "inputs": {},
                "outputs": {
                    "out/islands/counter.js": {
                        "bytes": 60,
                        "entryPoint": entry,
                        "imports": [{"path": "out/chunk-AB.js", "kind": "import-statement"}],
                    },
                    "out/chunk-AB.js": {"bytes": 17, "imports": []},
                },
            }
            _write(temp_dir / "meta.json", json.dumps(metafile))
            return _done(cmd)

        with mock.patch(RUN, side_effect=run):
            result = EsbuildBundlerBackend(settings=settings).bundle(config)

        assert result.success, result.errors
        served = result.outputs["islands/counter.js"]
        assert served.code == b'import{a}from"../chunk-AB.js";fetch("/app/_lime/alive");export{a as default};'
        assert served.hash == compute_hash(served.code)
        assert dict(result.entrypoint_manifest) == {entry: ("islands/counter.js", "chunk-AB.js")}
