from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import orjson
import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from adapters.filesystem.json_utils import load_json, write_json_atomic
from app.config import load_settings
from app.flow_wiring import build_flow_storage, build_http_client
from app.web_main import create_app
from domain.models import NodeKind
from domain.ports.flow_storage import FlowServiceError
from domain.services.button_routing import compile_button_routing
from domain.services.deserialize_flow import FlowDeserializer, LoadedFlow
from domain.services.flow_health import check_flow
from domain.services.render_blocks import render_graph
from domain.services.serialize_flow import FlowSerializer

app = typer.Typer(no_args_is_help=True)
flows_app = typer.Typer(no_args_is_help=True)
app.add_typer(flows_app, name="flows")
console = Console()


def _load_flow_file(path: Path) -> LoadedFlow:
    if not path.exists():
        console.print(f"[red]File not found:[/] {path}")
        raise typer.Exit(code=1)
    try:
        payload = load_json(path)
    except orjson.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON:[/] {path}: {exc}")
        raise typer.Exit(code=1) from exc
    return FlowDeserializer().deserialize(payload)


@app.command("validate")
def validate(input_path: Path = typer.Argument(..., help="Flow document to validate.")) -> None:
    flow = _load_flow_file(input_path)
    health = check_flow(flow.nodes, flow.edges)
    for issue in health.issues:
        color = "red" if issue.is_blocking else "yellow"
        target = issue.edge_id or issue.node_id or "flow"
        console.print(f"[{color}]{issue.code}[/] {target}: {issue.message}")
    if health.is_problem:
        console.print(f"[red]Flow is broken:[/] {input_path}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]Valid flow:[/] {input_path} ({health.node_count} nodes, {health.edge_count} edges)"
    )


@app.command("show")
def show(input_path: Path = typer.Argument(..., help="Flow document to render.")) -> None:
    flow = _load_flow_file(input_path)
    table = Table(title=flow.name or input_path.stem)
    table.add_column("Id")
    table.add_column("Block")
    table.add_column("Content")
    table.add_column("Outputs")
    for block in render_graph(flow.nodes):
        content = "\n".join(part for part in [block.body, *block.summary] if part)
        outputs = ", ".join(
            f"{port.handle} ({port.label})" if port.label else port.handle
            for port in block.output_ports
        )
        table.add_row(block.node_id, f"[{block.style}]{block.title}[/]", content, outputs)
    console.print(table)


@app.command("routing")
def routing(
    input_path: Path = typer.Argument(..., help="Flow document to inspect."),
) -> None:
    flow = _load_flow_file(input_path)
    templates = [node for node in flow.nodes if node.kind == NodeKind.TEMPLATE]
    if not templates:
        console.print("[yellow]No template blocks in flow[/]")
        return
    for node in templates:
        routes = compile_button_routing(node.id, flow.edges)
        rendered = ", ".join(f"{index} -> {target}" for index, target in sorted(routes.items()))
        console.print(f"[bold]{node.id}[/]: {rendered or 'no routed buttons'}")


@app.command("normalize")
def normalize(
    input_path: Path = typer.Argument(..., help="Flow document, saved or storage shape."),
    output_path: Path = typer.Argument(..., help="Where to write the normalized document."),
) -> None:
    flow = _load_flow_file(input_path)
    document = FlowSerializer().serialize(
        flow.nodes, flow.edges, name=flow.name, trigger_keyword=flow.trigger_keyword
    )
    write_json_atomic(output_path, document.to_payload())
    console.print(f"[green]Wrote[/] {output_path}")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8080, help="Bind port."),
    config: Path | None = typer.Option(None, "--config", help="YAML settings file."),
) -> None:
    uvicorn.run(create_app(load_settings(config)), host=host, port=port)


def _run_storage(config: Path | None, action: str, *args: Any) -> Any:
    settings = load_settings(config)

    async def _call() -> Any:
        async with build_http_client(settings) as client:
            storage = build_flow_storage(settings, client)
            return await getattr(storage, action)(*args)

    try:
        return asyncio.run(_call())
    except FlowServiceError as exc:
        console.print(f"[red]Flow storage failed:[/] {exc}")
        raise typer.Exit(code=1) from exc


@flows_app.command("list")
def list_flows(
    business_id: str | None = typer.Option(None, help="Defaults to builder.business_id."),
    config: Path | None = typer.Option(None, "--config", help="YAML settings file."),
) -> None:
    resolved = business_id or load_settings(config).builder.business_id
    flows = _run_storage(config, "list_by_business", resolved)
    if not flows:
        console.print("No flows found.")
        return
    table = Table()
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Created")
    for flow in flows:
        table.add_row(flow.flow_id, flow.name, flow.created_at)
    console.print(table)


@flows_app.command("rename")
def rename_flow(
    flow_id: str = typer.Argument(...),
    new_name: str = typer.Argument(...),
    config: Path | None = typer.Option(None, "--config", help="YAML settings file."),
) -> None:
    if not new_name.strip():
        console.print("[red]New name must not be empty[/]")
        raise typer.Exit(code=1)
    _run_storage(config, "rename", flow_id, new_name.strip())
    console.print(f"[green]Flow renamed:[/] {flow_id}")


@flows_app.command("delete")
def delete_flow(
    flow_id: str = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
    config: Path | None = typer.Option(None, "--config", help="YAML settings file."),
) -> None:
    if not yes and not typer.confirm(f"Delete flow {flow_id}?"):
        raise typer.Exit(code=0)
    _run_storage(config, "remove", flow_id)
    console.print(f"[green]Flow deleted:[/] {flow_id}")


if __name__ == "__main__":
    app()
