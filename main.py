# main.py
import os
import logging
import argparse
from parsers.input_parser import InputDeck
from utils.initializer import initialize_simulation
from utils.writer import save_post_processing


def setup_logging(level=logging.DEBUG):
    """Configure logging to file and console."""
    log_dir = "logs"
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "simulation.log")

    # Define logging format
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Configure the root logger
    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[
            logging.FileHandler(log_file, mode="w"),  # Overwrite log file each run
            logging.StreamHandler(),  # Also output to console
        ],
    )


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Run the plant transient.")
    parser.add_argument(
        "input_deck_path",
        type=str,
        help="Path to the input deck YAML file.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )
    return parser.parse_args()


def main():
    args = parse_args()
    setup_logging(getattr(logging, args.log_level))
    logger = logging.getLogger(__name__)

    # Parse the input deck
    input_deck = InputDeck.from_yaml(args.input_deck_path)

    simulation_objects = initialize_simulation(input_deck)
    coupler = simulation_objects["coupler"]
    states = coupler.solve(simulation_objects["state"])

    final = states[-1].neutronics
    logger.info(f"Final power: {final.power / 1e6:.2f} MW")
    if final.scrammed:
        logger.info(f"Reactor scrammed at t={final.scram_time:.2f} s: {final.scram_reason}")

    # Save post-processing data
    save_post_processing(simulation_objects, states)


if __name__ == "__main__":
    main()
