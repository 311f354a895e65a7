"""Camera and segmentation collaborators."""
