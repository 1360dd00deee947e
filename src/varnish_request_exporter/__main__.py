from varnish_request_exporter.cli import main

main()
