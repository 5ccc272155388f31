"""Xposed module builder.

Decodes a template module APK with apktool, injects the script-carrying
engine library and module metadata, rebuilds, and optionally signs it.
"""

from __future__ import annotations

import shutil
import tempfile
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from fripack.builders.base import BuildContext, engine_library
from fripack.builders.materialize import materialize_artifact
from fripack.elf import embed
from fripack.errors import IOFailure, PackagingToolFailure
from fripack.models import BuildRequest, ResolvedTargetConfig, XposedOptions
from fripack.packer import pack
from fripack.tools import ToolResult

ANDROID_NS = "http://schemas.android.com/apk/res/android"
LOADER_LIBRARY = "libfripack.so"
ICON_RESOURCE = "fripack_icon"

APKTOOL = "apktool"
APKSIGNER = "apksigner"

ET.register_namespace("android", ANDROID_NS)


def _android(attribute: str) -> str:
    return f"{{{ANDROID_NS}}}{attribute}"


def output_filename(config: ResolvedTargetConfig) -> str:
    if config.version:
        return f"{config.name}-{config.version}.apk"
    return f"{config.name}.apk"


@dataclass(slots=True)
class XposedBuilder:
    name: str = "xposed"

    def required_tools(self, config: ResolvedTargetConfig) -> tuple[str, ...]:
        if _options(config).signing is not None:
            return (APKTOOL, APKSIGNER)
        return (APKTOOL,)

    def build(self, request: BuildRequest, context: BuildContext) -> Path:
        config = request.config
        options = _options(config)
        if options.signing is not None and not options.signing.keystore.is_file():
            raise IOFailure(
                "Keystore file does not exist.",
                hint="Fix `keystore`; relative paths resolve against the config file.",
                context={"target": config.name, "path": str(options.signing.keystore)},
            )

        self._log(context, config, "acquire", "Acquiring module template and engine library.")
        template = context.cache.acquire(config.binary_key)
        engine = engine_library(context, config)
        packaged = pack(request)
        library = embed(engine.read_bytes(), packaged, platform=config.platform)

        with tempfile.TemporaryDirectory(prefix=f"fripack-{config.name}-") as work:
            workdir = Path(work)
            tree = workdir / "module"
            unsigned = workdir / "module.apk"

            self._log(context, config, "unpack", f"Decoding template {template.path.name}.")
            self._check(
                "unpack",
                APKTOOL,
                context.invoker.run(
                    APKTOOL, ["d", "-f", "-s", "-o", str(tree), str(template.path)], cwd=workdir
                ),
            )

            self._log(context, config, "inject", "Injecting engine library and metadata.")
            inject_library(tree, config.platform, library)
            patch_manifest(tree / "AndroidManifest.xml", options)
            if options.icon is not None:
                install_icon(tree, options.icon)

            self._log(context, config, "repack", "Rebuilding module APK.")
            self._check(
                "repack",
                APKTOOL,
                context.invoker.run(APKTOOL, ["b", "-o", str(unsigned), str(tree)], cwd=workdir),
            )
            if not unsigned.is_file():
                raise PackagingToolFailure(
                    step="repack",
                    tool=APKTOOL,
                    returncode=0,
                    stderr="apktool reported success but produced no APK.",
                )

            signing = options.signing
            if signing is not None:
                self._log(context, config, "sign", f"Signing with alias {signing.keystore_alias}.")
                args = [
                    "sign",
                    "--ks",
                    str(signing.keystore),
                    "--ks-pass",
                    f"pass:{signing.keystore_pass}",
                    "--ks-key-alias",
                    signing.keystore_alias,
                    str(unsigned),
                ]
                self._check(
                    "sign",
                    APKSIGNER,
                    context.invoker.run(APKSIGNER, args, cwd=workdir),
                    secrets=(signing.keystore_pass,),
                    hint="Check `keystore`, `keystorePass` and `keystoreAlias`.",
                )

            destination = config.output_dir / output_filename(config)
            artifact = materialize_artifact(destination, source=unsigned)

        self._log(context, config, "emit", f"Wrote {artifact}.")
        return artifact

    def _check(
        self,
        step: str,
        tool: str,
        result: ToolResult,
        *,
        secrets: Sequence[str] = (),
        hint: str | None = None,
    ) -> None:
        if result.ok:
            return
        raise PackagingToolFailure(
            step=step,
            tool=tool,
            returncode=result.returncode,
            stderr=_redact(result.stderr or result.stdout, secrets),
            command=[_redact(arg, secrets) for arg in result.argv],
            hint=hint,
        )

    def _log(
        self,
        context: BuildContext,
        config: ResolvedTargetConfig,
        phase: str,
        message: str,
    ) -> None:
        context.logger.log(
            operation=f"xposed_{phase}",
            target=config.name,
            phase=phase,
            builder=self.name,
            message=message,
        )


def inject_library(tree: Path, platform: str, library: bytes) -> Path:
    destination = tree / "lib" / platform / LOADER_LIBRARY
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(library)
    except OSError as exc:
        raise IOFailure(
            "Cannot write engine library into the decoded module.",
            context={"path": str(destination), "error": exc.strerror or str(exc)},
        ) from exc
    return destination


def patch_manifest(manifest: Path, options: XposedOptions) -> None:
    """Apply package name, label, scope and description to a decoded manifest."""
    try:
        document = ET.parse(manifest)
    except (OSError, ET.ParseError) as exc:
        raise IOFailure(
            "Cannot read the decoded AndroidManifest.xml.",
            hint="The template APK may be corrupt; clear the binary cache.",
            context={"path": str(manifest), "error": str(exc)},
        ) from exc

    root = document.getroot()
    root.set("package", options.package_name)
    application = root.find("application")
    if application is None:
        application = ET.SubElement(root, "application")
    application.set(_android("label"), options.display_name)
    if options.icon is not None:
        application.set(_android("icon"), f"@drawable/{ICON_RESOURCE}")

    _set_meta_data(application, "xposedmodule", "true")
    if options.scope:
        _set_meta_data(application, "xposedscope", ";".join(options.scope))
    if options.description:
        _set_meta_data(application, "xposeddescription", options.description)

    document.write(manifest, encoding="utf-8", xml_declaration=True)


def install_icon(tree: Path, icon: Path) -> Path:
    destination = tree / "res" / "drawable" / f"{ICON_RESOURCE}{icon.suffix or '.png'}"
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(icon, destination)
    except OSError as exc:
        raise IOFailure(
            "Cannot copy module icon.",
            hint="Fix the `icon` path.",
            context={"path": str(icon), "error": exc.strerror or str(exc)},
        ) from exc
    return destination


def _set_meta_data(application: ET.Element, name: str, value: str) -> None:
    for element in application.findall("meta-data"):
        if element.get(_android("name")) == name:
            element.set(_android("value"), value)
            return
    element = ET.SubElement(application, "meta-data")
    element.set(_android("name"), name)
    element.set(_android("value"), value)


def _options(config: ResolvedTargetConfig) -> XposedOptions:
    if not isinstance(config.options, XposedOptions):
        raise TypeError(f"Target `{config.name}` is not an xposed target.")
    return config.options


def _redact(text: str, secrets: Sequence[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "****")
    return text
