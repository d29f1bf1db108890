import goldinstall

if __name__ == '__main__':
	goldinstall.run_as_a_module()
