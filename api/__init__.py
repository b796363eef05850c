"""
API package for the Simulix FastAPI backend.

This package provides the REST API endpoints for:
- Bootstrap resampling (bootstrap.py)
- Bias-variance decomposition and tradeoff sweep (bias_variance.py)
- Importance sampling (importance_sampling.py)
- Random forest training (random_forest.py)
- Neural network training (neural_network.py)
- K-means game (kmeans.py)
- Low-rank VAE toy and optimizer traces (vae.py)
- Q-learning maze (qlearning.py)
- EM clustering (em_clustering.py)
- Huber mean by IRLS (huber.py)
- Simulated annealing (annealing.py)
- Hi-Lo card game (hilo.py)
- Alias method sampling (alias.py)
- System health and info (system.py)
- Background job management (jobs/, jobs_routes.py)

The numeric routines behind them live in ``api.simulations``.
"""

from .jobs import Job, JobStatus, JobType, job_manager

__all__ = [
    "job_manager",
    "Job",
    "JobStatus",
    "JobType",
]
