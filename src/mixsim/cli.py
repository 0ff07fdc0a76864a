import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from mixsim.exceptions import MixSimError

app = typer.Typer(
    name="mixsim",
    help="Synthetic media-mix data with known carryover and shape parameters",
    add_completion=False,
)

console = Console()


class CarryoverMode(str, Enum):
    geometric = "geometric"
    delayed = "delayed"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command()
def generate(
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Scenario JSON (defaults: tv, radio, online)", exists=True
    ),
    output_dir: Path = typer.Option(
        Path("data/"), "--output", "-o", help="Output directory for generated data"
    ),
    periods: int = typer.Option(104, "--periods", "-n", help="Periods when no config is given"),
    window_length: int = typer.Option(8, "--window", "-L", help="Window length when no config is given"),
    seed: int = typer.Option(42, "--seed", "-s", help="Random seed when no config is given"),
) -> None:
    from mixsim.config import default_scenario_config, load_scenario_config
    from mixsim.data.design import simulate_scenario
    from mixsim.data.storage import save_simulation

    console.print("\n[bold blue]mixsim[/bold blue] — Scenario Generator\n")

    try:
        if config_path is not None:
            config = load_scenario_config(config_path)
        else:
            config = default_scenario_config(
                periods=periods, seed=seed, window_length=window_length
            )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Simulating scenario...", total=None)
            result = simulate_scenario(config)

            progress.update(task, description="Saving files...")
            paths = save_simulation(result, output_dir=output_dir)
    except MixSimError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"\n[green]Retained {result.n_rows} of {config.periods} periods "
        f"(L={config.window_length})[/green]"
    )
    for kind, path in paths.items():
        console.print(f"   {kind:13s} {path}")
    console.print()


@app.command()
def fit(
    payload_path: Path = typer.Argument(..., help="Payload .npz file", exists=True),
    carryover: CarryoverMode = typer.Option(
        CarryoverMode.delayed, "--carryover", help="Carryover family to infer"
    ),
    fix_slope: bool = typer.Option(
        False, "--fix-slope/--free-slope", help="Hold S at 1 for every channel"
    ),
    draws: int = typer.Option(1000, "--draws", "-d", help="Posterior draws per chain"),
    tune: int = typer.Option(1000, "--tune", "-t", help="Number of tuning steps"),
    chains: int = typer.Option(4, "--chains", help="Number of MCMC chains"),
    target_accept: float = typer.Option(0.9, "--target-accept", help="Target acceptance rate"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Give up after this many seconds"
    ),
    output: Path = typer.Option(
        Path("results/inference.json"), "--output", "-o", help="Where to write the result"
    ),
    truth_path: Optional[Path] = typer.Option(
        None, "--truth", help="Ground truth JSON for a recovery table"
    ),
    seed: int = typer.Option(42, "--seed", "-s", help="Random seed"),
) -> None:
    from mixsim.data.storage import load_ground_truth, load_payload
    from mixsim.models import run_inference
    from mixsim.models.carryover_shape import CarryoverShapeEngine

    console.print("\n[bold blue]mixsim[/bold blue] — Parameter Inference\n")

    payload = load_payload(payload_path)
    console.print(
        f"Payload: N={payload.n}, channels={', '.join(payload.channel_names)}, "
        f"L={payload.max_lag}"
    )
    console.print(f"Sampling ({draws} draws x {chains} chains, {tune} tuning steps)...\n")

    engine = CarryoverShapeEngine(
        carryover=carryover.value,
        fix_slope=fix_slope,
        draws=draws,
        tune=tune,
        chains=chains,
        target_accept=target_accept,
        random_seed=seed,
        progressbar=True,
    )

    try:
        result = run_inference(engine, payload, timeout=timeout)
    except MixSimError as e:
        console.print(f"[red]{e}[/red]")
        console.print("The payload is unchanged; rerun to retry.")
        raise typer.Exit(1)

    result.save(output)
    console.print(f"\n[green]Result saved to {output}[/green]\n")

    _print_posterior_table(result)

    if truth_path is not None:
        _print_recovery(result, payload, load_ground_truth(truth_path))


def _print_posterior_table(result) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Channel", style="dim")
    for param in ("rate", "theta", "K", "S", "B"):
        table.add_column(param, justify="right")

    for channel, post in result.channels.items():
        row = [channel]
        for param in ("rate", "theta", "K", "S", "B"):
            est = getattr(post, param)
            row.append("—" if est is None else f"{est.mean:.3f} ± {est.sd:.3f}")
        table.add_row(*row)

    console.print(table)
    console.print()


def _print_recovery(result, payload, truth) -> None:
    from mixsim.evaluation import compare_to_ground_truth, fit_quality

    comparison = compare_to_ground_truth(result, truth)
    quality = fit_quality(payload, result)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Channel", style="dim")
    table.add_column("Param")
    table.add_column("True", justify="right")
    table.add_column("Recovered", justify="right")
    table.add_column("Error", justify="right")
    table.add_column("In HDI?", justify="center")

    for _, row in comparison.iterrows():
        err = float(row["error"])
        scale = max(abs(float(row["true_value"])), 1e-8)
        if abs(err) / scale < 0.1:
            err_color = "green"
        elif abs(err) / scale < 0.25:
            err_color = "yellow"
        else:
            err_color = "red"

        covered = row["covered"]
        table.add_row(
            str(row["channel"]),
            str(row["parameter"]),
            f"{float(row['true_value']):.3f}",
            f"{float(row['recovered_mean']):.3f} ± {float(row['recovered_std']):.3f}",
            f"[{err_color}]{err:+.3f}[/{err_color}]",
            "—" if covered is None else ("yes" if covered else "no"),
        )

    console.print(table)
    console.print(f"\nRMSE: {quality['rmse']:.4f}   R^2: {quality['r2']:.4f}\n")


@app.command()
def evaluate(
    result_path: Path = typer.Argument(..., help="Inference result JSON", exists=True),
    truth_path: Path = typer.Argument(..., help="Ground truth JSON", exists=True),
    payload_path: Optional[Path] = typer.Option(
        None, "--payload", "-p", help="Payload .npz for fit quality"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Save the report to a text file"
    ),
) -> None:
    from mixsim.data.storage import load_ground_truth, load_payload
    from mixsim.evaluation import compare_to_ground_truth, fit_quality, format_recovery_report
    from mixsim.models import InferenceResult, check_result_alignment

    console.print("\n[bold blue]mixsim[/bold blue] — Recovery Evaluation\n")

    try:
        result = InferenceResult.load(result_path)
        truth = load_ground_truth(truth_path)

        quality = None
        if payload_path is not None:
            payload = load_payload(payload_path)
            check_result_alignment(payload, result)
            quality = fit_quality(payload, result)
    except MixSimError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    report = format_recovery_report(compare_to_ground_truth(result, truth), quality)
    console.print(report)

    if output is not None:
        output.parent.mkdir(exist_ok=True, parents=True)
        output.write_text(report, encoding="utf-8")
        console.print(f"\nReport saved to {output}")

    console.print()


@app.command()
def transforms(
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Scenario JSON (defaults: tv, radio, online)", exists=True
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Save plots to directory"
    ),
    show_plots: bool = typer.Option(True, "--plots/--no-plots"),
) -> None:
    from mixsim.config import default_scenario_config, load_scenario_config
    from mixsim.transforms import (
        compute_marginal_response,
        find_saturation_threshold,
        get_effective_window,
        plot_carryover_weights,
        plot_shape_curves,
        rate_to_half_life,
        shape_ceiling,
    )

    console.print("\n[bold blue]mixsim[/bold blue] — Transform Parameters\n")

    try:
        config = (
            load_scenario_config(config_path)
            if config_path is not None
            else default_scenario_config()
        )
    except MixSimError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print("[bold]Carryover Parameters[/bold]\n")
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Channel", style="dim")
    table.add_column("Algorithm")
    table.add_column("rate", justify="right")
    table.add_column("theta", justify="right")
    table.add_column("L", justify="right")
    table.add_column("Half-life", justify="right")
    table.add_column("L (95% geometric)", justify="right")
    for ch in config.channels:
        table.add_row(
            ch.name,
            ch.carryover.algorithm,
            f"{ch.carryover.rate:.2f}",
            f"{ch.carryover.theta:.1f}" if ch.carryover.algorithm == "delayed" else "—",
            str(ch.carryover.window_length),
            f"{rate_to_half_life(ch.carryover.rate):.2f}",
            str(get_effective_window(ch.carryover.rate)),
        )
    console.print(table)

    console.print("\n[bold]Shape Parameters[/bold]\n")
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Channel", style="dim")
    table.add_column("K", justify="right")
    table.add_column("S", justify="right")
    table.add_column("B", justify="right")
    table.add_column("Response at x=1", justify="right")
    table.add_column("x at 90% of B", justify="right")
    table.add_column("Slope at K", justify="right")
    for ch in config.channels:
        table.add_row(
            ch.name,
            f"{ch.shape.K:.2f}",
            f"{ch.shape.S:.2f}",
            f"{ch.shape.B:.2f}",
            f"{shape_ceiling(ch.shape):.3f}",
            f"{find_saturation_threshold(ch.shape.K, ch.shape.S):.3f}",
            f"{compute_marginal_response(ch.shape.K, ch.shape.K, ch.shape.S, ch.shape.B):.3f}",
        )
    console.print(table)

    if not show_plots:
        console.print()
        return

    import matplotlib.pyplot as plt

    figures = {
        "carryover_weights.png": plot_carryover_weights(
            {ch.name: ch.carryover for ch in config.channels}
        ),
        "shape_curves.png": plot_shape_curves(
            {ch.name: ch.shape for ch in config.channels}
        ),
    }

    if output is not None:
        output.mkdir(exist_ok=True, parents=True)
        for filename, fig in figures.items():
            fig.savefig(output / filename, dpi=150, bbox_inches="tight")
            console.print(f"Saved {output / filename}")
    else:
        plt.show()

    console.print()


@app.command()
def info() -> None:
    console.print(
        """
[bold blue]mixsim[/bold blue]
[dim]Synthetic media-mix data with known carryover and shape parameters[/dim]

[bold]Pipeline[/bold]
  raw exposure -> normalize -> carryover -> shape -> response
  outcome = intercept + sum(response) + gamma * price + noise

The inference engine receives only the [italic]raw[/italic] lag windows and the
outcome, and must recover rate, theta, K, S and B on its own.

[bold]Commands[/bold]
  mixsim generate    Simulate a scenario (clean CSV, payload, ground truth)
  mixsim fit         Infer parameters from a payload with PyMC
  mixsim evaluate    Compare an inference result to the ground truth
  mixsim transforms  Show carryover/shape parameters and curves

[bold]Quick Start[/bold]
  $ mixsim generate -o data/
  $ mixsim fit data/payload.npz --truth data/ground_truth.json
"""
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
