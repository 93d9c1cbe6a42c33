"""FileDepot: storage of folders, files and images with background thumbnails"""
