#!/usr/bin/env python
"""
Compute M2 and fit indices for a fitted IRT model and response data.

The model is read from a JSON file matching ``ModelSpec``:

    {
        "groups": [
            {"name": "all", "items": [{"item_type": "dich", "slopes": [1.2],
                                       "intercept": -0.3}, ...]}
        ]
    }
"""

from pathlib import Path

import numpy as np
import typer
from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from irtfit.core.data import load_csv_to_response_matrix
from irtfit.core.paths import get_package_version
from irtfit.fit import (
    FitResult,
    M2Config,
    M2Error,
    PooledFitResult,
    compute_m2,
)
from irtfit.irt.abilities import estimate_abilities
from irtfit.irt.items import Item
from irtfit.irt.model import (
    SINGLE_GROUP_NAME,
    FittedModel,
    GroupModel,
    LatentDistribution,
)

console = Console(force_terminal=True, legacy_windows=True)
app = typer.Typer()


class GroupSpec(BaseModel):
    name: str = SINGLE_GROUP_NAME
    items: list[Item]
    distribution: LatentDistribution | None = None


class ModelSpec(BaseModel):
    groups: list[GroupSpec]
    n_estimated: int | None = None


def build_model(spec: ModelSpec, data_path: Path) -> FittedModel:
    """Combine the model JSON with the response CSV."""
    loaded = load_csv_to_response_matrix(data_path)
    groups = []
    for group in spec.groups:
        distribution = group.distribution or LatentDistribution.standard(
            group.items[0].n_factors
        )
        groups.append(
            GroupModel(
                name=group.name,
                items=tuple(group.items),
                distribution=distribution,
            )
        )
    return FittedModel(
        groups=tuple(groups),
        data=loaded.response_matrix,
        group_labels=loaded.groups if len(groups) > 1 else None,
        n_estimated=spec.n_estimated,
        item_names=loaded.item_names,
    )


def print_fit_table(result: FitResult) -> None:
    """Pretty-print fit statistics as a rich Table."""
    table = Table(title="Limited-Information Fit")
    table.add_column("Statistic", style="bold")
    table.add_column("Value", justify="right")

    ci = f"{result.ci_level:.0%}"
    rows: list[tuple[str, float | int | None]] = [
        ("M2", result.statistic),
        ("df", result.df),
        ("p-value", result.p_value),
        ("RMSEA", result.rmsea),
        (f"RMSEA {ci} lower", result.rmsea_lower),
        (f"RMSEA {ci} upper", result.rmsea_upper),
        ("SRMSR", result.srmsr),
        ("TLI", result.tli),
        ("CFI", result.cfi),
    ]
    for name, value in rows:
        if isinstance(value, int):
            table.add_row(name, str(value))
        else:
            table.add_row(name, f"{value:.4f}" if value is not None else "-")
    for group in result.per_group or ():
        srmsr = f"{group.srmsr:.4f}" if group.srmsr is not None else "-"
        table.add_row(
            f"[dim]{group.group}[/dim]",
            f"M2 {group.statistic:.4f}, SRMSR {srmsr}",
        )

    console.print(table)
    if result.null_model_error is not None:
        console.print(f"[yellow]Null model: {result.null_model_error}[/yellow]")


def print_pooled_table(result: PooledFitResult) -> None:
    """Pretty-print pooled statistics as a rich Table."""
    table = Table(title=f"Pooled over {result.n_imputations} Imputations")
    table.add_column("Statistic", style="bold")
    table.add_column("Mean", justify="right")
    table.add_column("SD", justify="right")
    for name, mean in result.mean.items():
        table.add_row(name, f"{mean:.4f}", f"{result.sd[name]:.4f}")
    console.print(table)


@app.command()
def main(
    model_path: Path = typer.Argument(
        ..., help="Path to JSON file describing the fitted model"
    ),
    data_path: Path = typer.Argument(
        ...,
        help="Path to CSV file with one column per item and an optional "
        "'group' column",
    ),
    imputations: int = typer.Option(
        0,
        "-m",
        "--imputations",
        help="Number of imputations when responses are missing",
    ),
    quadrature_points: int | None = typer.Option(
        None, "-q", "--quadrature-points", help="Quadrature nodes"
    ),
    use_qmc: bool = typer.Option(
        False, "--qmc", help="Use quasi-Monte Carlo integration"
    ),
    no_null: bool = typer.Option(
        False, "--no-null", help="Skip the null model (no TLI/CFI)"
    ),
    seed: int | None = typer.Option(
        None,
        "-s",
        "--seed",
        help="Random seed for reproducibility",
    ),
) -> None:
    """Compute M2, RMSEA, SRMSR, TLI and CFI for a fitted model."""

    # Validate input
    for path, suffix in ((model_path, ".json"), (data_path, ".csv")):
        if not path.exists():
            console.print(f"[red]File not found: {path}[/red]")
            raise typer.Exit(1)
        if path.suffix != suffix:
            console.print(f"[red]Expected a {suffix} file: {path}[/red]")
            raise typer.Exit(1)

    # Load model and data
    console.print("[dim]Loading model and data...[/dim]")
    try:
        spec = ModelSpec.model_validate_json(model_path.read_text())
        model = build_model(spec, data_path)
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Error loading inputs: {e}[/red]")
        raise typer.Exit(1) from e

    console.print(
        Panel(
            f"[bold]irtfit {get_package_version()}[/bold]\n\n"
            f"Respondents: [cyan]{model.data.n_respondents}[/cyan]\n"
            f"Items: [cyan]{model.n_items}[/cyan]\n"
            f"Groups: [cyan]{len(model.groups)}[/cyan]\n"
            f"Free parameters: [cyan]{model.nest}[/cyan]\n"
            f"Missing responses: [cyan]{int(model.data.missing_mask.sum())}"
            f"[/cyan]",
            title="Configuration",
        )
    )

    config = M2Config(
        calc_null=not no_null,
        quadrature_points=quadrature_points,
        use_qmc=use_qmc,
        imputations=imputations,
        best_effort_null=True,
    )

    latent_estimates = None
    if model.data.has_missing and imputations > 0:
        console.print("[dim]Estimating EAP scores for imputation...[/dim]")
        latent_estimates = estimate_abilities(model, config.quadrature).eap

    console.print("[dim]Computing M2...[/dim]")
    rng = np.random.default_rng(seed) if seed is not None else None
    try:
        result = compute_m2(
            model, config, latent_estimates=latent_estimates, rng=rng
        )
    except M2Error as e:
        console.print(f"[red]M2 failed: {e}[/red]")
        raise typer.Exit(1) from e

    if isinstance(result, PooledFitResult):
        print_pooled_table(result)
    elif isinstance(result, FitResult):
        print_fit_table(result)


if __name__ == "__main__":
    app()
