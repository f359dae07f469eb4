#!/usr/bin/env python3
"""Run a simulated vital-signs monitoring session."""

import argparse
import sys
from pathlib import Path
from datetime import datetime

# Make the repository root importable
sys.path.append(str(Path(__file__).resolve().parent.parent))

from src.monitor import run_session
from src.utils import set_seed, setup_logging, validate_config, load_config
from omegaconf import OmegaConf


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Simulate a vital-signs stream and summarise it",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Output directory for results"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed"
    )

    parser.add_argument(
        "--ticks",
        type=int,
        default=None,
        help="Number of ticks to simulate"
    )

    parser.add_argument(
        "--anomalies",
        action="store_true",
        help="Enable anomaly injection"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    return parser.parse_args()


def main():
    """Main function."""
    args = parse_args()

    config = load_config(args.config)

    # Override config with command line arguments
    if args.output_dir:
        config.output.save_dir = args.output_dir
    if args.seed is not None:
        config.seed = args.seed
    if args.ticks is not None:
        config.session.ticks = args.ticks
    if args.anomalies:
        config.simulator.anomalies = True
    if args.log_level:
        config.logging.level = args.log_level

    config = validate_config(config)

    set_seed(config.seed)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = Path(config.output.save_dir) / f"session_{timestamp}"
    output_dir.mkdir(parents=True, exist_ok=True)

    log_file = config.logging.get("file") or str(output_dir / "session.log")
    logger = setup_logging(level=config.logging.level, log_file=log_file)

    logger.info("Starting vital stream simulation")
    logger.info(f"Configuration: {config}")
    logger.info(f"Output directory: {output_dir}")

    try:
        results = run_session(
            config=OmegaConf.to_container(config, resolve=True),
            output_dir=output_dir,
            random_seed=config.seed
        )

        risk = results['risk']
        print(f"Risk level: {risk['riskLevel']} (score {risk['totalScore']})")
        for agent in risk['agents']:
            print(f"  {agent['agent']}: {agent['score']} - {'; '.join(agent['reasons'])}")
        print(f"Emergencies: {results['emergencies']}, anomalies: {len(results['anomalies'])}")
        for metric, result in results['forecasts'].items():
            points = ", ".join(f"{value:.2f}" for value in result['forecast'])
            print(f"  {metric} ({results['trends'][metric]}): {points}")

        config_save_path = output_dir / "config.yaml"
        with open(config_save_path, 'w') as f:
            OmegaConf.save(config, f)

        logger.info(f"Configuration saved to {config_save_path}")

    except Exception as e:
        logger.error(f"Simulation failed: {e}")
        raise


if __name__ == "__main__":
    main()
