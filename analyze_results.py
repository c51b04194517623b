#!/usr/bin/env python3
"""
Results Analysis for Hydra Case-Control Simulation Outputs

Summarizes and plots the replicate estimates written by
experiments/run_case_control_simulation.py. Several result directories
can be passed to compare designs or sampling schemes side by side.

Usage:
    python analyze_results.py outputs/case_control_simulation/
    python analyze_results.py outputs/srs/ outputs/sps/ outputs/stratified/
    python analyze_results.py --help
"""

import argparse
import json
from pathlib import Path
from typing import Dict, List

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402

# Set up plotting style
sns.set_theme(style="whitegrid")
sns.set_palette("husl")


class SimulationResultsAnalyzer:
    """Analysis of replicate estimates from one or more simulation runs."""

    def __init__(self, results_dirs: List[str]):
        self.results_dirs = [Path(d) for d in results_dirs]
        self.replicates: Dict[str, pd.DataFrame] = {}
        self.stats: Dict[str, dict] = {}
        self.load_all_data()

    @staticmethod
    def _label(stats: dict, fallback: str) -> str:
        study = stats.get('configuration', {}).get('study', {})
        if not study:
            return fallback
        return (f"{study.get('design_type')}/{study.get('sampling_scheme')}"
                f" 1:{study.get('ratio')}")

    def load_all_data(self):
        """Load replicate tables and summary statistics."""
        for results_dir in self.results_dirs:
            print(f"📂 Loading data from {results_dir}")
            replicates_file = results_dir / "replicates.csv"
            if not replicates_file.exists():
                raise FileNotFoundError(f"{replicates_file} not found")

            stats = {}
            stats_file = results_dir / "summary_statistics.json"
            if stats_file.exists():
                with open(stats_file, 'r') as f:
                    stats = json.load(f)
                print("✓ Summary statistics loaded")
            else:
                print("⚠️  summary_statistics.json not found")

            label = self._label(stats, results_dir.name)
            self.stats[label] = stats
            self.replicates[label] = pd.read_csv(replicates_file)
            print(f"✓ replicates loaded ({self.replicates[label].shape})")

    def truth(self, label: str) -> float:
        return self.stats[label].get('summary', {}).get('truth', np.nan)

    def summary_table(self) -> pd.DataFrame:
        """One row per run: bias, coverage and CI width of the estimates."""
        rows = []
        for label, frame in self.replicates.items():
            ok = frame[frame['error'].isna()]
            truth = self.truth(label)
            log_est = np.log(ok['estimate'])
            rows.append({
                'run': label,
                'replicates': len(frame),
                'failed': len(frame) - len(ok),
                'truth': truth,
                'mean_estimate': ok['estimate'].mean(),
                'log_bias': log_est.mean() - np.log(truth),
                'empirical_log_sd': log_est.std(),
                'coverage': ((ok['lower'] <= truth)
                             & (truth <= ok['upper'])).mean(),
                'mean_log_ci_width': (np.log(ok['upper'])
                                      - np.log(ok['lower'])).mean(),
            })
        return pd.DataFrame(rows).set_index('run')

    def print_summary(self):
        """Print the per-run summary and population benchmarks."""
        print("\n" + "=" * 60)
        print("CASE-CONTROL SIMULATION RESULTS SUMMARY")
        print("=" * 60)

        for label, stats in self.stats.items():
            effects = stats.get('true_effects', {})
            population = stats.get('population', {})
            print(f"\n📊 {label}")
            if population:
                print(f"   Population: {population.get('n_persons', 0):,} "
                      f"persons, {population.get('n_cases', 0):,} cases")
            if effects:
                print(f"   True OR: {effects['odds_ratio']:.3f} "
                      f"(crude {effects['crude_odds_ratio']:.3f})")
                print(f"   True RR: {effects['rate_ratio']:.3f} "
                      f"(crude {effects['crude_rate_ratio']:.3f})")

        print("\n" + self.summary_table().round(4).to_string())

        errors = pd.concat(
            [frame['error'].dropna() for frame in self.replicates.values()]
        )
        if not errors.empty:
            print("\n⚠️  Failed replicates by cause:")
            causes = errors.str.split(':').str[0].value_counts()
            for cause, count in causes.items():
                print(f"   {cause}: {count}")

    def create_overview_dashboard(self, figsize=(14, 10)):
        """Estimate distributions and CI coverage across runs."""
        frames = []
        for label, frame in self.replicates.items():
            ok = frame[frame['error'].isna()].copy()
            ok['run'] = label
            ok['log_estimate'] = np.log(ok['estimate'])
            ok['covers'] = ((ok['lower'] <= self.truth(label))
                            & (self.truth(label) <= ok['upper']))
            frames.append(ok)
        data = pd.concat(frames, ignore_index=True)
        table = self.summary_table()

        fig, axes = plt.subplots(2, 2, figsize=figsize)

        ax = axes[0, 0]
        sns.histplot(data=data, x='log_estimate', hue='run', bins=40,
                     element='step', stat='density', common_norm=False, ax=ax)
        for label in self.replicates:
            ax.axvline(np.log(self.truth(label)), color='black',
                       linestyle='--', alpha=0.6)
        ax.set_title('Distribution of log estimates')
        ax.set_xlabel('log(estimate)')

        ax = axes[0, 1]
        sns.boxplot(data=data, x='run', y='log_estimate', ax=ax)
        ax.set_title('Log estimates by run')
        ax.tick_params(axis='x', rotation=30)

        ax = axes[1, 0]
        table['coverage'].plot.bar(ax=ax, color='steelblue')
        ax.axhline(0.95, color='red', linestyle='--', label='Nominal 95%')
        ax.set_ylim(0, 1)
        ax.set_title('Empirical 95% CI coverage')
        ax.legend()
        ax.tick_params(axis='x', rotation=30)

        ax = axes[1, 1]
        first = next(iter(self.replicates))
        ci = data[data['run'] == first].head(100).reset_index(drop=True)
        colors = np.where(ci['covers'], 'steelblue', 'red')
        ax.vlines(ci.index, ci['lower'], ci['upper'], colors=colors, alpha=0.7)
        ax.scatter(ci.index, ci['estimate'], s=6, color='black')
        ax.axhline(self.truth(first), color='black', linestyle='--')
        ax.set_yscale('log')
        ax.set_title(f'First 100 confidence intervals ({first})')
        ax.set_xlabel('Replicate')

        plt.tight_layout()
        output = self.results_dirs[0] / 'analysis_dashboard.png'
        plt.savefig(output, dpi=300, bbox_inches='tight')
        plt.close(fig)
        print(f"\n📁 Dashboard saved to: {output}")
        return output


def main():
    """Main function for command-line usage."""
    parser = argparse.ArgumentParser(
        description="Analyze Case-Control Simulation Results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python analyze_results.py outputs/case_control_simulation/
  python analyze_results.py outputs/srs/ outputs/stratified/ --no-dashboard
        """
    )

    parser.add_argument(
        'results_dirs',
        nargs='+',
        help='Path(s) to simulation results directories'
    )

    parser.add_argument(
        '--no-dashboard',
        action='store_true',
        help='Only print the summary, skip the plots'
    )

    args = parser.parse_args()

    try:
        analyzer = SimulationResultsAnalyzer(args.results_dirs)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Error loading results: {e}")
        return 1

    analyzer.print_summary()
    if not args.no_dashboard:
        analyzer.create_overview_dashboard()

    print("\n🎉 Analysis complete!")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
