"""Android shared-object builder."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from fripack.builders.base import BuildContext, engine_library
from fripack.builders.materialize import materialize_artifact
from fripack.elf import embed
from fripack.models import BuildRequest, ResolvedTargetConfig
from fripack.packer import pack


def output_filename(config: ResolvedTargetConfig) -> str:
    return f"{config.name}-{config.platform}.so"


@dataclass(slots=True)
class AndroidSoBuilder:
    name: str = "android-so"

    def required_tools(self, config: ResolvedTargetConfig) -> tuple[str, ...]:
        return ()

    def build(self, request: BuildRequest, context: BuildContext) -> Path:
        config = request.config
        log = context.logger
        log.log(
            operation="acquire_engine",
            target=config.name,
            phase="acquire",
            builder=self.name,
            message=f"Acquiring engine binary for {config.platform} (frida {config.frida_version}).",
        )
        engine = engine_library(context, config)

        log.log(
            operation="pack_script",
            target=config.name,
            phase="pack",
            builder=self.name,
            message=f"Packing entry script {request.entry}.",
            extra={"xz": config.xz},
        )
        packaged = pack(request)
        data = embed(engine.read_bytes(), packaged, platform=config.platform)

        destination = config.output_dir / output_filename(config)
        artifact = materialize_artifact(destination, payload=data)
        log.log(
            operation="emit_artifact",
            target=config.name,
            phase="emit",
            builder=self.name,
            message=f"Wrote {artifact}.",
            extra={"size": len(data), "payload": len(packaged.payload)},
        )
        return artifact
