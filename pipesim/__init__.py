from pipesim.Simulator import Simulator

__version__ = "0.1.0"
