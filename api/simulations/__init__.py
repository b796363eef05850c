"""
Numeric core of the Simulix visualizations.

Each module is a set of small, stateless routines consumed by one router:

- generators / digits: synthetic inputs (noisy curves, normal samples,
  classification data, cities, 28x28 digit bitmaps)
- bootstrap: resampled statistics, percentile intervals, convergence
- bias_variance / tradeoff: polynomial decomposition and the degree sweep
- importance_sampling: MC, standard IS and self-normalised IS estimators
- random_forest: bagged one-split trees with capped metrics
- neural_network / nn_validation: MLP trainer with early stopping
- kmeans: tick-driven K-means game and elbow data
- vae / vae_optimizers: toy low-rank VAE loss/quality curves, MM and
  SVRG optimizer traces
- qlearning: tabular Q-learning on a grid maze
- em_clustering: EM for a 2-D Gaussian mixture
- huber: Huber location estimate by IRLS
- annealing: simulated annealing for a tour and a bit-string toy
- hilo: Hi-Lo card game with card-counting probabilities
- alias: Walker alias tables and sampling
"""
