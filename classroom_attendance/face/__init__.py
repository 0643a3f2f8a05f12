"""Face building blocks (analyzer/registry/matcher).

The attendance pipeline only relies on the `FaceAnalyzer` contract, so the
InsightFace backend can be swapped for a fake in tests.
"""
