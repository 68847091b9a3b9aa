from __future__ import annotations

from typing import Optional
from pathlib import Path
import os
import time

import typer
from rich.console import Console
from rich.table import Table
import httpx


app = typer.Typer()
console = Console()
trace_console = Console(stderr=True)

TERMINAL_IMAGE_STATUSES = {"completed", "failed", "error"}


def render_markdown(plan: dict) -> str:
    lines: list[str] = []
    for route in plan.get("routes", []):
        lines.append(f"## Day {route.get('index')}: {route.get('startPlace')} -> {route.get('endPlace')}")
        lines.append("")
        lines.append(route.get("description", ""))
        lines.append("")
        lines.append(f"- Distance: {route.get('distanceKm', 0):g} km")
        if route.get("duration"):
            lines.append(f"- Duration: {route['duration']}")
        for poi in route.get("pointsOfInterest", []):
            lines.append(f"- {poi}")
        lines.append("")
    image = plan.get("image") or {}
    if image.get("url"):
        lines.append(f"![Trip image]({image['url']})")
    return "\n".join(lines)


def watch_image(base_url: str, job_id: str, max_attempts: int = 20, initial: float = 2.0, cap: float = 15.0) -> dict:
    status: dict = {"status": "waiting"}
    with console.status("Waiting for image...") as spinner:
        for attempt in range(max_attempts):
            time.sleep(min(cap, initial * 2**attempt))
            try:
                resp = httpx.get(f"{base_url}/checkImageStatus", params={"id": job_id}, timeout=30)
                resp.raise_for_status()
                status = resp.json()
            except httpx.HTTPError as e:
                trace_console.print(f"Status check failed: {e}", style="dim")
                continue
            if status.get("status") in TERMINAL_IMAGE_STATUSES:
                break
            spinner.update(
                f"Waiting for image... queue position {status.get('queuePosition', '?')}, "
                f"~{status.get('waitTime', '?')}s"
            )
    return status


@app.command()
def plan(
    country: str = typer.Argument(..., help="The country to travel through."),
    trip_type: str = typer.Option("car", "--trip-type", "-t", help="Either 'car' or 'bicycle'."),
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Save Markdown to file."
    ),
    watch: bool = typer.Option(
        False, "--watch-image", help="Keep checking the image job until it finishes."
    ),
) -> None:
    if trip_type not in ("car", "bicycle"):
        console.print("trip type must be 'car' or 'bicycle'", style="bold red")
        raise typer.Exit(code=2)

    base_url = os.getenv("TRIP_PLANNER_URL", "http://localhost:3001").rstrip("/")
    with console.status("Planning your trip..."):
        try:
            resp = httpx.post(
                f"{base_url}/getRoute",
                json={"country": country, "tripType": trip_type},
                timeout=600,
            )
        except httpx.HTTPError as e:
            trace_console.print(f"Request failed: {e}", style="bold red")
            raise typer.Exit(code=1)

    try:
        payload = resp.json()
    except ValueError:
        payload = {}
    if resp.status_code != 200:
        trace_console.print(payload.get("details") or payload.get("error") or resp.text, style="bold red")
        raise typer.Exit(code=1)

    table = Table(title=f"{country} by {trip_type}")
    table.add_column("Day", justify="right")
    table.add_column("From")
    table.add_column("To")
    table.add_column("km", justify="right")
    table.add_column("Duration")
    table.add_column("Points of interest")
    for route in payload.get("routes", []):
        table.add_row(
            str(route.get("index")),
            route.get("startPlace", ""),
            route.get("endPlace", ""),
            f"{route.get('distanceKm', 0):g}",
            route.get("duration") or "-",
            ", ".join(route.get("pointsOfInterest", [])),
        )
    console.print(table)

    image = payload.get("image") or {}
    if image.get("status") == "completed":
        console.print(f"Image: {image.get('url')}", style="green")
    elif watch and image.get("id"):
        status = watch_image(base_url, image["id"])
        if status.get("url"):
            image["url"] = status["url"]
            console.print(f"Image: {status['url']}", style="green")
        else:
            console.print(f"Image unavailable ({status.get('status')})", style="yellow")
    else:
        console.print("Image unavailable", style="yellow")

    if output_file:
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_text(render_markdown(payload), encoding="utf-8")
            console.print(f"\nSaved itinerary to {output_file}", style="green")
        except OSError as e:
            trace_console.print(f"Failed to write file: {e}", style="bold red")


if __name__ == "__main__":
    app()
