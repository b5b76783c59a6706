"""Auction engine core: registry, escrow, NFT custody, engines"""
