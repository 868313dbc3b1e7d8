from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from relpipe.core.config import Config, load_config_or_default
from relpipe.core.errors import ErrorCode
from relpipe.core.result import Err
from relpipe.core.secrets import Secret, child_environ, secret_from_env
from relpipe.output.console import ConsoleProtocol, RichConsole
from relpipe.services.assets import AssetPublisher
from relpipe.services.builder import ArtifactBuilder
from relpipe.services.checkout import SourceCheckout
from relpipe.services.http import RealHttpClient
from relpipe.services.orchestrator import Orchestrator
from relpipe.services.registry import RegistryPublisher
from relpipe.services.toolchain import DependencyCache, ToolchainInstaller


@dataclass(frozen=True, slots=True)
class CLIContext:
    project_dir: Path
    config: Config
    console: ConsoleProtocol


def build_context(*, config_path: Path, project_dir: Path) -> CLIContext:
    root = project_dir.expanduser().resolve()
    path = config_path if config_path.is_absolute() else root / config_path

    result = load_config_or_default(path, project_dir=root)
    if isinstance(result, Err):
        typer.echo(f"error: {result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    return CLIContext(project_dir=root, config=result.value, console=RichConsole())


def _token(env_name: str, ctx: CLIContext) -> Secret | None:
    token = secret_from_env(env_name)
    if token is not None:
        ctx.console.mask(token)
    return token


def build_orchestrator(ctx: CLIContext, *, dry_run: bool) -> Orchestrator:
    """Wire the real collaborators; tokens are read here and nowhere else."""
    cfg = ctx.config
    # Subprocesses never see a credential; the registry job adds its own token back.
    env = child_environ((cfg.upload.token_env, cfg.registry.token_env))

    cache: DependencyCache | None = None
    if cfg.build.cache_dir:
        cache = DependencyCache(ctx.project_dir / cfg.build.cache_dir, project=cfg.project.binary)

    publisher: RegistryPublisher | None = None
    if cfg.registry.enabled:
        publisher = RegistryPublisher(
            token=_token(cfg.registry.token_env, ctx),
            registry_name=cfg.registry.name,
            env=env,
        )

    return Orchestrator(
        targets=cfg.targets,
        source=SourceCheckout(
            clone_url=cfg.project.clone_url, local_dir=ctx.project_dir, env=env
        ),
        toolchain=ToolchainInstaller(cfg.toolchain, env=env),
        builder=ArtifactBuilder(
            binary=cfg.project.binary, config=cfg.build, cache=cache, env=env
        ),
        uploader=AssetPublisher(token=_token(cfg.upload.token_env, ctx), http=RealHttpClient()),
        publisher=publisher,
        console=ctx.console,
        work_root=ctx.project_dir / cfg.pipeline.work_dir,
        registry_gate=cfg.pipeline.registry_gate,
        max_parallel=cfg.pipeline.max_parallel,
        dry_run=dry_run,
    )
