#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Performance Benchmark Suite

Benchmarks:
- Parser backend throughput (json vs simple)
- Logfmt record decoding
- SQLite row ingestion
- Memory usage of a full raw ingestion
"""

import sys
import io
import time
import tempfile
from pathlib import Path
from typing import Dict
import statistics
import json

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from bpfstream.backends import BACKENDS, get_backend
from bpfstream.domains import VFS
from bpfstream.pipeline import ingest_raw
from bpfstream.sink import RowSink, SQLiteSink


def generate_vfs_trace(rows: int) -> str:
    """Build a synthetic vfs raw trace in bpftrace JSON format"""
    probes = ("vfs_read", "vfs_write", "vfs_open", "vfs_fsync")
    lines = [
        '{"type": "attached_probes", "data": {"probes": 8}}\n',
        '{"type": "time", "data": "12:00:00\\n"}\n',
    ]
    for i in range(rows):
        payload = (f"ts={1700000000000 + i} fn={probes[i % 4]} tid={1000 + i % 64} "
                   f"rc={i % 4096} path='/var/log/file{i % 100}.log' inode={i % 5000} "
                   f"offset={i * 512} len=4096")
        lines.append('{"type": "printf", "data": "%s"}\n' % payload)
    return "".join(lines)


class NullSink(RowSink):
    def __init__(self):
        self.rows = 0

    def append_row(self, record):
        self.rows += 1


class PerformanceBenchmark:
    """Performance benchmarking suite"""

    def __init__(self, rows: int):
        self.rows = rows
        self.trace = generate_vfs_trace(rows)
        self.results = {}

    @staticmethod
    def _summarize(times, rows: int) -> Dict:
        mean = statistics.mean(times)
        return {
            'mean_s': mean,
            'median_s': statistics.median(times),
            'best_s': min(times),
            'rows_per_sec': rows / mean,
        }

    def benchmark_parsers(self, iterations: int = 5) -> Dict:
        """Benchmark raw payload delivery for each parser backend"""
        print(f"\nBenchmarking Parser Backends ({self.rows} rows, {iterations} iterations)...")

        results = {}
        for name in sorted(BACKENDS):
            times = []
            for _ in range(iterations):
                delivered = []
                start = time.perf_counter()
                get_backend(name).run(io.StringIO(self.trace), {'printf': delivered.append})
                times.append(time.perf_counter() - start)
                assert len(delivered) == self.rows
            results[name] = self._summarize(times, self.rows)
            print(f"  {name:<7} {results[name]['rows_per_sec']:>12,.0f} rows/sec, "
                  f"{results[name]['mean_s'] * 1000:.1f}ms avg")

        if 'json' in results and 'simple' in results:
            speedup = results['simple']['rows_per_sec'] / results['json']['rows_per_sec']
            print(f"  Speedup (simple vs json): {speedup:.1f}x")
        return results

    def benchmark_decoding(self, iterations: int = 5) -> Dict:
        """Benchmark full raw ingestion into a sink that discards rows"""
        print(f"\nBenchmarking Record Decoding ({iterations} iterations)...")

        results = {}
        for name in sorted(BACKENDS):
            times = []
            for _ in range(iterations):
                sink = NullSink()
                start = time.perf_counter()
                ingest_raw(io.StringIO(self.trace), VFS, sink, backend=name)
                times.append(time.perf_counter() - start)
            results[name] = self._summarize(times, self.rows)
            print(f"  {name:<7} {results[name]['rows_per_sec']:>12,.0f} rows/sec")
        return results

    def benchmark_sqlite(self, batch_size: int = 1000) -> Dict:
        """Benchmark ingestion into SQLite"""
        print(f"\nBenchmarking SQLite Ingestion (batch size {batch_size})...")

        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = str(Path(temp_dir) / "bench.db")
            start = time.perf_counter()
            with SQLiteSink(db_path, "vfs", VFS, batch_size=batch_size) as sink:
                ingest_raw(io.StringIO(self.trace), VFS, sink)
            elapsed = time.perf_counter() - start

        results = {
            'total_time_s': elapsed,
            'rows_per_sec': self.rows / elapsed,
            'ms_per_row': (elapsed / self.rows) * 1000,
        }
        print(f"  SQLite: {results['rows_per_sec']:,.0f} rows/sec, "
              f"{results['ms_per_row']:.4f}ms per row")
        return results

    def measure_memory_usage(self) -> Dict:
        """Measure memory growth across one raw ingestion"""
        print("\nMeasuring Memory Usage...")

        import psutil
        process = psutil.Process()

        mem_before = process.memory_info().rss / 1024 / 1024  # MB
        ingest_raw(io.StringIO(self.trace), VFS, NullSink())
        mem_after = process.memory_info().rss / 1024 / 1024  # MB

        results = {
            'process_rss_mb': mem_after,
            'ingest_growth_mb': mem_after - mem_before,
        }
        print(f"  Process RSS: {results['process_rss_mb']:.1f} MB")
        print(f"  Growth during ingestion: {results['ingest_growth_mb']:.1f} MB")
        return results

    def run_all_benchmarks(self) -> Dict:
        """Run all performance benchmarks"""
        print("="*60)
        print("  bpfstream - Performance Benchmark Suite")
        print("="*60)

        results = {}

        try:
            results['parsers'] = self.benchmark_parsers()
        except Exception as e:
            print(f"  Parser benchmark failed: {e}")
            results['parsers'] = {'error': str(e)}

        try:
            results['decoding'] = self.benchmark_decoding()
        except Exception as e:
            print(f"  Decoding benchmark failed: {e}")
            results['decoding'] = {'error': str(e)}

        try:
            results['sqlite'] = self.benchmark_sqlite()
        except Exception as e:
            print(f"  SQLite benchmark failed: {e}")
            results['sqlite'] = {'error': str(e)}

        try:
            results['memory'] = self.measure_memory_usage()
        except Exception as e:
            print(f"  Memory measurement failed: {e}")
            results['memory'] = {'error': str(e)}

        print("\n" + "="*60)
        print("  Benchmark Complete!")
        print("="*60)

        return results

    def save_results(self, filename: str = "benchmark_results.json"):
        """Save benchmark results to file"""
        with open(filename, 'w') as f:
            json.dump(self.results, f, indent=2)
        print(f"\nResults saved to {filename}")


def main():
    """Run performance benchmarks"""
    import argparse

    parser = argparse.ArgumentParser(description="bpfstream Performance Benchmarks")
    parser.add_argument('--rows', type=int, default=100_000,
                        help='Number of synthetic printf records')
    parser.add_argument('--output', type=str, default='benchmark_results.json',
                        help='Output file for results')

    args = parser.parse_args()

    if args.rows < 1:
        print("--rows must be at least 1")
        return 1

    benchmark = PerformanceBenchmark(args.rows)
    results = benchmark.run_all_benchmarks()
    benchmark.results = results
    benchmark.save_results(args.output)

    return 0


if __name__ == '__main__':
    sys.exit(main())
