# config.py
import os
from dotenv import load_dotenv

load_dotenv()

# Strategy defaults
DEFAULT_SYMBOL = os.getenv("BLOCKS_DEFAULT_SYMBOL", "BTCUSDT")
DEFAULT_TIMEFRAME = os.getenv("BLOCKS_DEFAULT_TIMEFRAME", "1h")

# Compiler
MAX_GRAPH_DEPTH = int(os.getenv("BLOCKS_MAX_GRAPH_DEPTH", "256"))

# Execution
MAX_PARALLEL_RUNS = int(os.getenv("BLOCKS_MAX_PARALLEL_RUNS", "4"))
LOG_LEVEL = os.getenv("BLOCKS_LOG_LEVEL", "INFO")

# Block thresholds
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
THRESHOLD_EQUALS_TOLERANCE = 0.0001
