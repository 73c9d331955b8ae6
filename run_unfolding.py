"""
Quick runner for graph unfolding.

python run_unfolding.py [gene] [iterations]
"""
import sys
from pathlib import Path

root_dir = Path(__file__).resolve().parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from gum.engine.example import run_unfolding

if __name__ == "__main__":
    gene = sys.argv[1] if len(sys.argv) > 1 else "star"
    iterations = int(sys.argv[2]) if len(sys.argv) > 2 else 10
    run_unfolding(gene=gene, iterations=iterations)
