# Peer Rendezvous - signaling relay
