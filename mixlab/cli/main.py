"""
mixlab CLI — fit a response model and allocate a budget from the terminal.

Usage:
    mixlab simulate --output data.csv               # Write a simulated dataset
    mixlab fit --data data.csv --channels A,B       # Fit the log-linear model
    mixlab optimize --model model.yaml --budget 100 # Recommend an allocation
    mixlab config show                              # Show resolved settings
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
import pandas as pd
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from mixlab.mmm.errors import MixModelError

console = Console()

_SAMPLE_NAMES = ("two_channel", "three_channel")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _parse_channels(channels: str | None) -> list[str] | None:
    """Parse --channels 'A,B' into ['A', 'B']. Returns None if not set."""
    if not channels:
        return None
    return [c.strip() for c in channels.split(",") if c.strip()]


def _parse_coefficients(pairs: tuple[str, ...]) -> dict[str, float]:
    """Parse repeated --coef CHANNEL=VALUE flags."""
    coefficients: dict[str, float] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"Expected CHANNEL=VALUE, got '{pair}'", param_hint="--coef")
        try:
            coefficients[name.strip()] = float(value)
        except ValueError:
            raise click.BadParameter(
                f"Coefficient for '{name}' is not a number: '{value}'", param_hint="--coef"
            ) from None
    return coefficients


@click.group()
@click.version_option(version="0.1.0", prog_name="mixlab")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool) -> None:
    """mixlab — Media Mix Modeling primer: fit channel response, allocate budget."""
    from mixlab.core.config import resolve_config

    try:
        level = "DEBUG" if verbose else resolve_config().log_level
    except ValueError as e:
        console.print(f"[yellow]Ignoring invalid config:[/yellow] {e}")
        level = "WARNING"
    _configure_logging(level)


@cli.command()
@click.option("--output", "output_path", type=click.Path(), required=True, help="CSV file to write")
@click.option("--sample", "sample_name", type=click.Choice(_SAMPLE_NAMES), default="two_channel", help="Built-in ground truth")
@click.option("--weeks", type=int, default=None, help="Number of weeks (default: sample size)")
@click.option("--noise", type=float, default=None, help="Outcome noise standard deviation")
@click.option("--seed", type=int, default=None, help="Random seed")
def simulate(
    output_path: str,
    sample_name: str,
    weeks: int | None,
    noise: float | None,
    seed: int | None,
) -> None:
    """Write a simulated weekly spend/revenue dataset."""
    from mixlab.data.samples import load_sample

    try:
        df = load_sample(sample_name, n_weeks=weeks, noise_sd=noise, seed=seed)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(2) from None

    df.to_csv(output_path, index=False)
    console.print(f"[green]Wrote {len(df)} weeks to {output_path}[/green]")


@cli.command()
@click.option("--data", "data_path", type=click.Path(exists=True), required=True, help="CSV with spend and outcome columns")
@click.option("--channels", default=None, help="Comma-separated channel columns (default: all numeric)")
@click.option("--target", default="revenue", help="Outcome column name")
@click.option("--output", "output_path", type=click.Path(), default=None, help="Save fitted model to YAML")
def fit(data_path: str, channels: str | None, target: str, output_path: str | None) -> None:
    """Fit the log-linear response model to historical data."""
    from mixlab.core.schema import save_model_spec
    from mixlab.mmm.models.log_linear import ResponseModelFitter

    df = pd.read_csv(data_path)

    try:
        result = ResponseModelFitter().fit(df, channels=_parse_channels(channels), target=target)
    except MixModelError as e:
        console.print(f"[red]Fit failed:[/red] {e}")
        raise SystemExit(1) from None

    table = Table(title=f"Log-linear model for '{target}'")
    table.add_column("Term", style="cyan")
    table.add_column("Estimate", justify="right")
    table.add_column("Std. error", justify="right", style="dim")
    table.add_row("baseline", f"{result.model.baseline:,.4f}", f"{result.std_errors['baseline']:,.4f}")
    for ch, coef in result.model.coefficients.items():
        table.add_row(ch, f"{coef:,.4f}", f"{result.std_errors[ch]:,.4f}")
    console.print(table)

    console.print(
        f"Observations: {result.n_observations}  "
        f"R²: {result.r_squared:.4f}  RMSE: {result.rmse:,.4f}  MAPE: {result.mape:.2f}%"
    )

    if output_path:
        path = save_model_spec(result.model, output_path, target=target)
        console.print(f"[green]Model saved to {path}[/green]")


@cli.command()
@click.option("--model", "model_path", type=click.Path(exists=True), default=None, help="Model spec YAML from 'mixlab fit'")
@click.option("--baseline", type=float, default=None, help="Baseline outcome (with --coef)")
@click.option("--coef", "coef_pairs", multiple=True, help="Channel coefficient as CHANNEL=VALUE (repeatable)")
@click.option("--budget", type=float, required=True, help="Total budget to allocate")
@click.option("--step", type=float, default=None, help="Spend granularity of the grid")
@click.option("--objective", type=click.Choice(["maximize_outcome", "maximize_profit"]), default=None, help="What to maximize")
@click.option("--exhaust/--no-exhaust", "exhaust_budget", default=None, help="Spend exactly the budget, or anything up to it")
@click.option("--strategy", type=click.Choice(["grid", "slsqp", "auto"]), default="auto", help="Search strategy")
@click.option("--compare-even", is_flag=True, help="Report lift over an even split")
def optimize(
    model_path: str | None,
    baseline: float | None,
    coef_pairs: tuple[str, ...],
    budget: float,
    step: float | None,
    objective: str | None,
    exhaust_budget: bool | None,
    strategy: str,
    compare_even: bool,
) -> None:
    """Recommend a budget allocation across channels."""
    from mixlab.core.config import resolve_config
    from mixlab.core.schema import load_model_spec
    from mixlab.mmm.models.base import ChannelResponseModel
    from mixlab.mmm.optimizer.grid_allocator import BudgetAllocator

    if model_path:
        try:
            model = load_model_spec(model_path)
        except ValueError as e:
            console.print(f"[red]Invalid model spec:[/red] {e}")
            raise SystemExit(2) from None
    elif baseline is not None and coef_pairs:
        model = ChannelResponseModel(baseline=baseline, coefficients=_parse_coefficients(coef_pairs))
    else:
        console.print("[red]Error:[/red] Provide --model or --baseline with at least one --coef")
        raise SystemExit(2)

    try:
        config = resolve_config(step=step, objective=objective, exhaust_budget=exhaust_budget)
    except ValueError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise SystemExit(2) from None

    allocator = BudgetAllocator(model, max_grid_channels=config.max_grid_channels)
    reference = allocator.even_split(budget) if compare_even else None

    try:
        result = allocator.optimize(
            total_budget=budget,
            step=config.step,
            objective=config.objective,
            exhaust_budget=config.exhaust_budget,
            current_allocation=reference,
            strategy=strategy,
        )
    except ValueError as e:
        console.print(f"[red]Allocation failed:[/red] {e}")
        raise SystemExit(1) from None

    table = Table(title=f"Recommended allocation ({result.strategy})")
    table.add_column("Channel", style="cyan")
    table.add_column("Spend", justify="right")
    if reference:
        table.add_column("Even split", justify="right", style="dim")
    for ch, spend in result.allocation.items():
        row = [ch, f"{spend:,.2f}"]
        if reference:
            row.append(f"{reference[ch]:,.2f}")
        table.add_row(*row)
    console.print(table)

    lines = [
        f"Budget: [bold]{result.total_budget:,.2f}[/bold]  Spent: {result.total_spend:,.2f}",
        f"Expected outcome: [bold]{result.expected_outcome:,.2f}[/bold]",
        f"Expected profit:  [bold]{result.expected_profit:,.2f}[/bold]",
    ]
    if result.tie:
        lines.append(f"[yellow]{result.n_ties} allocations tie; showing the first.[/yellow]")
    if result.expected_lift is not None:
        pct = f" ({result.expected_lift_pct:+.2f}%)" if result.expected_lift_pct is not None else ""
        lines.append(f"Lift over even split: {result.expected_lift:+,.2f}{pct}")
    console.print(Panel("\n".join(lines), title=config.objective, border_style="green"))


@cli.group()
def config() -> None:
    """Show or change saved defaults."""


@config.command("show")
def config_show() -> None:
    """Show the resolved configuration."""
    from mixlab.core.config import CONFIG_FILE, resolve_config

    try:
        resolved = resolve_config()
    except ValueError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise SystemExit(2) from None

    table = Table(title=f"mixlab config ({CONFIG_FILE})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in resolved.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Save a default, e.g. 'mixlab config set step 5'."""
    from mixlab.core import config as config_module

    try:
        config_module.set_config_value(key, value, Path(config_module.CONFIG_FILE))
    except (KeyError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(2) from None

    console.print(f"[green]Saved {key} = {value} to {config_module.CONFIG_FILE}[/green]")


if __name__ == "__main__":
    cli()
