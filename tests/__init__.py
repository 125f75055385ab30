"""Fund Connect test suite"""
