"""Core computational modules for stagewise.

This package contains the analysis engines:
- preprocessing: Matrix loading, cell id parsing, optional normalisation
- clustering: Similarity clustering, choice of k, relabelling, marker genes
- visualization: t-SNE/UMAP embeddings and expression plots
- composition: Cluster composition per developmental stage
- trajectory: Diffusion pseudo-time and its agreement with stage order
"""
