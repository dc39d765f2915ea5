# plotter.py

import numpy as np
import os
import argparse
import matplotlib.pyplot as plt
from parsers.input_parser import InputDeck


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Plot the simulation results.")
    parser.add_argument(
        "input_deck_path",
        type=str,
        help="Path to the input deck YAML file.",
    )
    # add an optional argument to specify the starting plot time
    parser.add_argument(
        "--starting_time",
        type=float,
        default=0.0,
        help="Starting time for the plot.",
    )
    return parser.parse_args()


def load(output_dir, file_prefix, quantity):
    return np.load(os.path.join(output_dir, f"{file_prefix}_{quantity}.npy"))


def main():
    args = parse_args()
    input_deck = InputDeck.from_yaml(args.input_deck_path)

    if not input_deck.post_processing.output:
        print("Post-processing output is disabled in the input deck.")
        return

    output_dir = input_deck.post_processing.output_dir
    file_prefix = input_deck.post_processing.file_prefix
    nominal_power = input_deck.neutronics.nominal_power

    time = load(output_dir, file_prefix, "TIME")
    start = (np.abs(time - args.starting_time)).argmin()
    time = time[start:]
    power = load(output_dir, file_prefix, "POWER")[start:]
    reactivity = load(output_dir, file_prefix, "REACTIVITY")[start:]
    flow_ids = load(output_dir, file_prefix, "FLOW_NODE_IDS")
    flow_temperature = load(output_dir, file_prefix, "FLOW_TEMPERATURE")[start:]
    flow_pressure = load(output_dir, file_prefix, "FLOW_PRESSURE")[start:]
    ncg_moles = load(output_dir, file_prefix, "NCG_MOLES")[start:]

    plt.figure()
    plt.plot(time, power / nominal_power * 100, label="Power")
    plt.xlabel("Time [s]")
    plt.ylabel("Power [% of nominal]")
    plt.legend()
    plt.show()

    plt.figure()
    plt.plot(time, reactivity * 1e5, label="Reactivity")
    plt.xlabel("Time [s]")
    plt.ylabel("Reactivity [pcm]")
    plt.legend()
    plt.show()

    plt.figure()
    for j, node_id in enumerate(flow_ids):
        plt.plot(time, flow_temperature[:, j], label=str(node_id))
    plt.xlabel("Time [s]")
    plt.ylabel("Temperature [K]")
    plt.legend()
    plt.show()

    plt.figure()
    for j, node_id in enumerate(flow_ids):
        plt.plot(time, flow_pressure[:, j] / 1e6, label=str(node_id))
    plt.xlabel("Time [s]")
    plt.ylabel("Pressure [MPa]")
    plt.legend()
    plt.show()

    plt.figure()
    plt.plot(time, ncg_moles.sum(axis=1), label="Total NCG")
    plt.xlabel("Time [s]")
    plt.ylabel("Non-condensible gas [mol]")
    plt.legend()
    plt.show()


if __name__ == "__main__":
    main()
