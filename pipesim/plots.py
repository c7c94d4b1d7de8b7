import matplotlib.pyplot as plt
import numpy as np


def plot_registers(registers, show=False):
    """Heat map of the 32 registers laid out as 4 rows of 8."""
    # registers are unbounded ints; clip so the colour range stays finite
    limit = 1e300
    data = np.array([max(min(r, limit), -limit) for r in registers], dtype=float).reshape(4, 8)

    fig, ax = plt.subplots(figsize=(12, 4))
    ax.imshow(data, cmap="Blues", aspect='auto')
    for i in range(data.shape[0]):
        for j in range(data.shape[1]):
            ax.text(j, i, f"R{i * 8 + j}\n{registers[i * 8 + j]}",
                    ha='center', va='center', color='black')
    ax.set_title("Register State")
    ax.axis('off')

    if show:
        plt.show()
    return fig


def plot_comparison(results, show=False):
    """
    Bar charts of cycles and IPC per run.

    results: {"pipelined": stats, "serial": stats, ...} as returned by
    Simulator.get_performance_stats().
    """
    labels = list(results)
    cycles = np.array([results[name]['cycles'] for name in labels])
    ipc = np.array([results[name]['ipc'] for name in labels])
    x = np.arange(len(labels))

    fig, (ax_cycles, ax_ipc) = plt.subplots(1, 2, figsize=(10, 4))
    ax_cycles.bar(x, cycles, color="tab:blue")
    ax_cycles.set_title("Clock cycles")
    ax_ipc.bar(x, ipc, color="tab:orange")
    ax_ipc.set_title("Instructions per cycle")
    for ax in (ax_cycles, ax_ipc):
        ax.set_xticks(x)
        ax.set_xticklabels(labels)
    fig.tight_layout()

    if show:
        plt.show()
    return fig
